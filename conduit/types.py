class ErrorCode:
    """Coarse error codes carried by ``error`` chunks.

    The transport and UI use these to decide whether a turn can be retried.
    """

    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    ABORTED = "aborted"
    TIMEOUT = "timeout"
    EXECUTION_ERROR = "execution_error"
    PROCESS_EXIT = "process_exit"
    MAPPING_ERROR = "mapping_error"
    TURN_FAILED = "turn_failed"
    CODEX_ERROR = "codex_error"


class DataPartType:
    AGENT_STATUS = "agent-status"
    SANDBOX_STATUS = "sandbox-status"
    FILE_WRITTEN = "file-written"
    COMMAND_OUTPUT = "command-output"
    PREVIEW_URL = "preview-url"
