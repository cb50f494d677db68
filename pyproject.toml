[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "zenforge"
version = "0.1.0"
description = "Runtime building blocks for tool-using agents: approvals, checkpoints, memory augmentation and MCP tool adapters."
requires-python = ">=3.10"
dependencies = []
keywords = ["agent", "approval", "checkpoint", "mcp", "json-rpc", "tools"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Application Frameworks",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[tool.hatch.build.targets.wheel]
packages = ["zenforge"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
