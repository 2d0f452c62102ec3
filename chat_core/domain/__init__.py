"""领域层模型与协议。

包含：
- models: Message / ContextEntry / SettingsRecord 数据模型。
- conversation: Conversation 与内存中的 ConversationStore，以及持久化协议。
- exceptions: 业务异常类型定义。
"""
