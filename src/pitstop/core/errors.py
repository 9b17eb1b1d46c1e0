class OpsError(Exception):
    """ストア操作の想定内の失敗を表す例外。

    Result の Err 側に入れて返すためのもので、通常は raise しない。
    """


class NotFoundError(OpsError):
    def __init__(self, target_id: str, kind: str = "Task") -> None:
        self.target_id = target_id
        self.kind = kind
        super().__init__(f"{kind} not found: {target_id}")


class QuotaExceededError(OpsError):
    def __init__(self, kind: str, limit: int) -> None:
        self.kind = kind
        self.limit = limit
        unit = kind if limit == 1 else f"{kind}s"
        super().__init__(f"Guest quota exceeded: guests can create up to {limit} {unit}. Sign up to create more.")


class InvalidDueDateError(OpsError):
    def __init__(self, value: str, reason: str = "") -> None:
        self.value = value
        _msg = f"Invalid due date: {value!r}"
        super().__init__(f"{_msg} ({reason})" if reason else _msg)


class ValidationError(OpsError):
    pass


class StorageUnavailableError(OpsError):
    pass


class RemoteError(OpsError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
