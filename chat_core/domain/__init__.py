"""领域层模型与协议。

包含：
- models: ChatMessage / Completion / Turn 等统一数据结构。
- store: 消息与请求日志共用的 RecordStore 协议。
- exceptions: 业务异常类型定义。
"""
