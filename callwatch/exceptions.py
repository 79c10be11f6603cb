import time
from typing import Any, Dict, Optional
class CallwatchError(Exception):
    """
    Base exception for the profiler with diagnostic context.

    Carries a timestamp and a context dict that is rendered into the message.
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.timestamp = time.time()
        self.context = context or {}

    def __str__(self) -> str:
        base_msg = self.message
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" [Context: {context_str}]"
        return base_msg
class ConfigError(CallwatchError):
    """
    Invalid configuration value or unreadable rules file.
    """

    def __init__(self, message: str, field_name: Optional[str] = None,
                 field_value: Optional[Any] = None, **kwargs):
        context = kwargs.pop('context', {})
        if field_name:
            context['field'] = field_name
        if field_value is not None:
            context['value'] = str(field_value)[:100]
        super().__init__(message, context=context, **kwargs)
class UsageError(CallwatchError):
    """
    Invalid argument passed to a profiler API.

    Never raised into instrumented code: it is built for its message and logged.
    """

    def __init__(self, message: str, operation: Optional[str] = None,
                 argument: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', {})
        if operation:
            context['operation'] = operation
        if argument:
            context['argument'] = argument
        super().__init__(message, context=context, **kwargs)
class IntrospectionError(CallwatchError):
    """
    A receiver member could not be inspected safely.
    """

    def __init__(self, message: str, receiver: Optional[str] = None,
                 member: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', {})
        if receiver:
            context['receiver'] = receiver
        if member:
            context['member'] = member
        super().__init__(message, context=context, **kwargs)
class SourceLookupError(CallwatchError):
    """
    A script source exists but could not be read or imported.
    """

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', {})
        if path:
            context['path'] = path
        super().__init__(message, context=context, **kwargs)
