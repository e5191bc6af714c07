"""
API 端点模块

按功能拆分的 API 端点：
- projects: 项目读写、提交、删除、想法删除
- chat: 聊天会话、消息、AI 代理
- versions: 版本历史与恢复
- migration: 旧版数据迁移
"""
