from .aura import Aura
from .behavior_rule import BehaviorRule
from .rule_trigger_log import RuleTriggerLog

__all__ = [
    "Aura",
    "BehaviorRule",
    "RuleTriggerLog",
]
