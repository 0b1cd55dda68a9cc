from __future__ import annotations


class JournalError(Exception):
    """客户端异常基类；message 可以直接展示给用户。"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ApiError(JournalError):
    """未归类的网络/服务端错误：通用“可重试”提示，由用户决定是否重试。"""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ValidationError(ApiError):
    """创建/更新请求体不合法（HTTP 400），在表单层展示，不自动重试。"""

    def __init__(self, message: str, *, errors: list[str] | None = None, status_code: int = 400):
        super().__init__(message, status_code=status_code)
        self.errors = list(errors or [])


class NotFoundError(ApiError):
    """记录已不存在（例如在别处被删除）。"""

    def __init__(self, message: str = "This entry no longer exists"):
        super().__init__(message, status_code=404)


class AuthChallengeError(JournalError):
    """敏感日记密码错误。不区分失败原因。"""

    def __init__(self, message: str = "Invalid password"):
        super().__init__(message)


class UploadError(JournalError):
    """单个附件上传失败；只影响这一个附件。"""


class DraftStateError(JournalError):
    """在当前草稿状态下不允许的操作。"""


class DraftNotReadyError(DraftStateError):
    """仍有附件在上传中，不能提交。"""


class AttachmentIndexError(DraftStateError, IndexError):
    """附件下标不存在（可能已被移除）。"""
