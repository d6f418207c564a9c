from alfred_sdk.llm.chat import BaseChatModel, ChatInvokeCompletion, ChatOpenAI
from alfred_sdk.llm.messages import AssistantMessage, Message, SystemMessage, UserMessage

__all__ = [
    "BaseChatModel",
    "ChatInvokeCompletion",
    "ChatOpenAI",
    "Message",
    "SystemMessage",
    "UserMessage",
    "AssistantMessage",
]
