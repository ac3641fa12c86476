DEPLOYMENT_STATUS_PENDING = "pending"
DEPLOYMENT_STATUS_RUNNING = "running"
DEPLOYMENT_STATUS_FAILED = "failed"
DEPLOYMENT_STATUSES = (
    DEPLOYMENT_STATUS_PENDING,
    DEPLOYMENT_STATUS_RUNNING,
    DEPLOYMENT_STATUS_FAILED,
)
TERMINAL_DEPLOYMENT_STATUSES = (DEPLOYMENT_STATUS_RUNNING, DEPLOYMENT_STATUS_FAILED)

ROLLOUT_FRESH = "fresh"
ROLLOUT_INCREMENTAL = "incremental"
ROLLOUT_KINDS = (ROLLOUT_FRESH, ROLLOUT_INCREMENTAL)

TARGET_NEW_INSTANCE = "new-instance"
TARGET_EXISTING_INSTANCE = "existing-instance"
TARGET_MODES = (TARGET_NEW_INSTANCE, TARGET_EXISTING_INSTANCE)

REGIONS = (
    "us-east-1",
    "us-east-2",
    "us-west-1",
    "us-west-2",
    "eu-west-1",
    "eu-central-1",
    "ap-southeast-1",
    "ap-southeast-2",
    "ap-northeast-1",
)
INSTANCE_SIZES = (
    "t2.micro",
    "t2.small",
    "t2.medium",
    "t3.micro",
    "t3.small",
    "t3.medium",
)

ACCESS_KEY_ID_MIN_LEN = 16
SECRET_ACCESS_KEY_MIN_LEN = 40
CREDENTIAL_MAX_LEN = 128

STALE_THRESHOLD_SECONDS = 180
RECONCILE_INTERVAL_SECONDS = 5.0
DEFAULT_DISPATCH_TIMEOUT_SECONDS = 15.0
