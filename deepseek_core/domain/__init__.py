"""领域层模型与协议。

包含：
- models: Message / ChatRequest / ChatResponse / ServiceResult 等数据模型。
- constants: 模型 ID、角色与响应格式常量。
- exceptions: 业务异常类型定义。
"""
