"""Constants for the extended workflow template format."""

CHECKOUT_SETUP = "checkout"

# Keys consumed by the compiler; never present in compiled output.
STEP_EXTENSION_KEYS = ("setup", "paths", "local", "local_env_flag", "local_cache_directory")
REQUIRED_TOP_KEYS = {"jobs"}

TEMPLATES_DIR = ".github/workflow-templates"
WORKFLOWS_DIR = ".github/workflows"
TEMPLATE_SUFFIX = ".yml"

HEADER = "# AUTOGENERATED by actions-workflow-tools from {source}\n\n"

SINGLE_SETUP_NAME = "▶️ Setup {setup}: {step}"
START_SETUP_NAME = "🔽 Start setup [{setup}]"
FINISH_SETUP_NAME = "🔼 Finished setup [{setup}]"

ERROR_MARKER = ":error:"
TRIGGER = "pull_request"

TYPE_ALIASES = {
    "test": ["unit"],
    "test:long": ["unit:long"],
    "prepare": ["autofix", "lint", "unit"],
    "pr": ["autofix", "lint", "unit"],
}
DEFAULT_TYPE = "prepare"

# Fetched actions live here, under the repo root or `local_cache_directory`.
ACTIONS_CACHE_DIR = "node_modules/.actions-cache"
ACTION_FILES = ("action.yml", "action.yaml")
