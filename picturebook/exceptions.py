"""应用异常定义。

所有业务异常都继承 AppException，由 main.py 中的全局处理器统一渲染为
``{"error": {"code", "message", "details"}}``。
"""
from __future__ import annotations

from typing import Any


class AppException(Exception):
    code: str = "APP_ERROR"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}


class NotFoundError(AppException):
    code = "NOT_FOUND"
    status_code = 404


class ValidationFailedError(AppException):
    code = "VALIDATION_FAILED"
    status_code = 400


class InvalidPhaseError(AppException):
    code = "INVALID_PHASE"
    status_code = 400

    def __init__(self, phase: int):
        super().__init__(f"Invalid phase number: {phase}", details={"phase": phase})


class DependencyNotReadyError(AppException):
    """前置阶段尚未 approved（或转换所需产出缺失）"""

    code = "DEPENDENCY_NOT_READY"
    status_code = 409


class InvalidTransitionError(AppException):
    """阶段状态不允许当前操作（例如对非 review 状态执行 approve）"""

    code = "INVALID_TRANSITION"
    status_code = 409


class MalformedProviderOutputError(AppException):
    """结构化内容服务返回的文本无法解析为期望的 JSON 结构"""

    code = "MALFORMED_PROVIDER_OUTPUT"
    status_code = 502


class BatchGenerationError(AppException):
    """批量出图在第一次不可恢复的错误处中止；已生成的结果随异常一起返回"""

    code = "BATCH_ABORTED"
    status_code = 502

    def __init__(self, message: str, *, generated: int, total: int, results: list[dict[str, Any]]):
        super().__init__(
            message,
            details={"generated": generated, "total": total, "results": results},
        )
        self.generated = generated
        self.total = total
        self.results = results
