from alfred_sdk.gateway.hooks import SkillLifecycleHooks
from alfred_sdk.gateway.manager import GatewayManager

__all__ = ["GatewayManager", "SkillLifecycleHooks"]
