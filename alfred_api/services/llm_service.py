"""
LLM service.

Picks the chat model for each task and keeps one instance per model name,
so tasks that resolve to the same model share a client.
"""

import logging
from enum import Enum

from alfred_sdk.config import LLMConfig
from alfred_sdk.llm import BaseChatModel, ChatOpenAI

logger = logging.getLogger(__name__)


class ModelTask(str, Enum):
    DEFAULT = "default"
    CLASSIFICATION = "classification"


class LLMService:
    """
    Per-task chat models.

    Usage:
        ```python
        service = LLMService(config.llm)
        llm = service.get_llm(ModelTask.CLASSIFICATION)
        response = await llm.ainvoke(messages)
        ```
    """

    def __init__(self, config: LLMConfig):
        self.config = config
        self._models: dict[str, ChatOpenAI] = {}

    def get_model_name(self, task: ModelTask = ModelTask.DEFAULT) -> str:
        if task == ModelTask.CLASSIFICATION and self.config.classifier_model:
            return self.config.classifier_model
        return self.config.default_model

    def get_llm(self, task: ModelTask = ModelTask.DEFAULT) -> BaseChatModel:
        model = self.get_model_name(task)
        if model not in self._models:
            logger.debug(f"Chat model for {task.value}: {model}")
            self._models[model] = ChatOpenAI(
                model=model,
                api_key=self.config.openai_api_key,
                base_url=self.config.openai_base_url,
            )
        return self._models[model]

    async def shutdown(self) -> None:
        for llm in self._models.values():
            await llm.close()
        self._models.clear()
