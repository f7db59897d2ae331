"""Names shared by the CI steps: env vars, listing keys, files and functionalities."""

from enum import Enum

# Environment variables set by the CI runner
GITHUB_WORKSPACE = "GITHUB_WORKSPACE"
GITHUB_STEP_SUMMARY = "GITHUB_STEP_SUMMARY"

# Action inputs, passed by the runner as INPUT_<NAME>
INPUT_VALIDATE_CHANGED_ONLY = "INPUT_VALIDATE_CHANGED_ONLY"
INPUT_BRANCH_NAME = "INPUT_BRANCH_NAME"
INPUT_BASE_BRANCH_NAME = "INPUT_BASE_BRANCH_NAME"
INPUT_SOURCE_GIT_REPO_URL = "INPUT_SOURCE_GIT_REPO_URL"
INPUT_TARGET_GIT_REPO_URL = "INPUT_TARGET_GIT_REPO_URL"
INPUT_TOKEN = "INPUT_TOKEN"
INPUT_PARALLEL = "INPUT_PARALLEL"
INPUT_DEBUG = "INPUT_DEBUG"
INPUT_HELM_BINARY = "INPUT_HELM_BINARY"

DEFAULT_BASE_BRANCH = "main"
DEFAULT_HELM_BINARY = "helm"

# Files
LISTING_FILE = "helm-chart-listing.yaml"
CI_CONFIG_FILE = ".ci.config.yaml"
CHART_FILE = "Chart.yaml"
VALUES_FILE = "values.yaml"
CI_VALUES_DIR = "ci"
TESTS_DIR = "tests"
TEST_OUTPUT_DIR = ".helm-test-output"
TEST_RESULTS_FILE = "results.xml"


class ListingKeys:
    dir = "dir"
    relative_path = "relativePath"
    name = "name"
    folder_name = "folderName"
    manifest_path = "manifestPath"


class Functionality(str, Enum):
    """The operations that can be switched on or off per chart."""

    VALIDATION = "helm-chart-validation"
    DEPENDENCY_UPDATE = "helm-chart-dependency-update"
    TEST = "helm-chart-test"


# helm unittest is never run for charts without a tests/ directory;
# the runner reports this exit code instead.
NO_TESTS_EXIT_CODE = -1
NO_TESTS_MESSAGE = "No tests directory found"
