"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在调用方（HTTP 层、CLI 或 UI）做统一捕获与用户提示。

错误分类：
- ValidationError: 输入不合法，在任何存储写入之前抛出。
- UpstreamError: LLM 调用失败（传输层或响应结构），从不自动重试。
- StorageError: 读写存储失败，对当前操作是致命的。
- ConfigurationError: 启动时缺少必要配置（密钥、地址、模型等）。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 upstream_body、path 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ValidationError(BusinessError):
    """参数校验失败（如消息内容为空）。"""


class ConfigurationError(BusinessError):
    """配置缺失或非法，只在构造阶段抛出。"""


class StorageError(BusinessError):
    """存储读写失败。"""


class PromptNotFoundError(BusinessError):
    """提示词资源不存在或无法读取。"""


class UpstreamError(BusinessError):
    """LLM 上游调用失败的基类。"""


class NetworkError(UpstreamError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(UpstreamError):
    """上游 API 返回非 2xx 时抛出，携带状态码与响应体。"""


class RateLimitError(ApiError):
    """上游返回 429，由调用方决定是否重试。"""


class EmptyCompletionError(UpstreamError):
    """上游返回体无法解析或 choices 为空。"""


class LLMCallError(UpstreamError):
    """对话编排层包装后的 LLM 调用失败。"""


class InvalidLLMResponseError(UpstreamError):
    """对话编排层无法从补全结果中取出回复。"""
