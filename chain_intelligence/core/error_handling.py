"""
Error handling for the intelligence engine

Failures inside one sub-analysis are recorded here and isolated so the
rest of a report can still be produced. Only an empty lane set is fatal.
"""

import traceback
from collections import Counter as CounterDict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import structlog
from prometheus_client import CollectorRegistry, Counter

logger = structlog.get_logger(__name__)


class IntelligenceError(Exception):
    """Base class for all engine errors"""


class NoLanesConfiguredError(IntelligenceError, ValueError):
    """Raised when an engine is built without any lanes"""

    def __init__(self, message: str = "At least one lane must be configured"):
        super().__init__(message)


class InsufficientLanesError(IntelligenceError):
    """An analysis needs more lanes than are available"""

    def __init__(self, operation: str, required: int, available: int):
        self.operation = operation
        self.required = required
        self.available = available
        super().__init__(
            f"{operation} needs at least {required} lane{'s' if required > 1 else ''}, "
            f"{available} available"
        )


class MissingMetricError(IntelligenceError, KeyError):
    """A lane payload lacks one or more required metrics"""

    def __init__(self, lane_id: str, fields: Sequence[str]):
        self.lane_id = lane_id
        self.fields = tuple(fields)
        super().__init__(f"Lane {lane_id} is missing metrics: {', '.join(self.fields)}")

    def __str__(self) -> str:
        return self.args[0]


class InvalidMetricError(IntelligenceError, ValueError):
    """A lane metric is outside its valid range"""

    def __init__(self, lane_id: str, field_name: str, value: Any):
        self.lane_id = lane_id
        self.field_name = field_name
        self.value = value
        super().__init__(f"Lane {lane_id} reported invalid {field_name}: {value!r}")


class DegenerateSeriesError(IntelligenceError, ValueError):
    """A historical series is too short for trend analysis"""

    def __init__(self, series_name: str, length: int):
        self.series_name = series_name
        self.length = length
        super().__init__(f"Series {series_name!r} has {length} point(s); at least 2 required")


class UnknownLaneError(IntelligenceError, KeyError):
    """A lane outside the configured set was referenced"""

    def __init__(self, lane_id: str):
        self.lane_id = lane_id
        super().__init__(f"Lane {lane_id} is not part of the configured lane set")

    def __str__(self) -> str:
        return self.args[0]


class ErrorSeverity(Enum):
    """Error severity levels"""
    DEBUG = 1
    INFO = 2
    WARNING = 3
    ERROR = 4
    CRITICAL = 5


@dataclass
class ErrorContext:
    """Detailed error context"""
    timestamp: datetime
    severity: ErrorSeverity
    error_type: str
    message: str
    component: str
    operation: str
    stack_trace: str = ""
    additional_context: Dict[str, Any] = field(default_factory=dict)


class ErrorHandler:
    """Records isolated failures per component"""

    def __init__(self, registry: Optional[CollectorRegistry] = None, max_history: int = 100):
        self.error_history: Dict[str, List[ErrorContext]] = {}
        self.max_history = max_history
        self.error_counter = Counter(
            'chain_intelligence_errors_total',
            'Total number of isolated analysis errors',
            ['component', 'error_type', 'severity'],
            registry=registry
        )

    def record_error(
        self,
        error: BaseException,
        component: str,
        operation: str,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        **context: Any
    ) -> ErrorContext:
        """Record error with full context"""
        entry = ErrorContext(
            timestamp=datetime.now(),
            severity=severity,
            error_type=error.__class__.__name__,
            message=str(error),
            component=component,
            operation=operation,
            stack_trace="".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ),
            additional_context=context
        )

        component_errors = self.error_history.setdefault(component, [])
        component_errors.append(entry)
        if len(component_errors) > self.max_history:
            component_errors.pop(0)

        self.error_counter.labels(
            component=component,
            error_type=entry.error_type,
            severity=severity.name
        ).inc()

        log = logger.warning if severity.value <= ErrorSeverity.WARNING.value else logger.error
        log(
            "analysis_error",
            component=component,
            operation=operation,
            error_type=entry.error_type,
            error=entry.message,
            **context
        )
        return entry

    def errors_for(self, component: Optional[str] = None) -> List[ErrorContext]:
        """Recorded errors, oldest first"""
        if component is not None:
            return list(self.error_history.get(component, []))
        merged = [entry for entries in self.error_history.values() for entry in entries]
        return sorted(merged, key=lambda entry: entry.timestamp)

    def get_error_summary(self, component: Optional[str] = None, recent: int = 10) -> Dict[str, Any]:
        """Counts per severity, type and component plus the newest errors"""
        errors = self.errors_for(component)

        return {
            'total_errors': len(errors),
            'by_severity': {
                severity.name: sum(1 for e in errors if e.severity == severity)
                for severity in ErrorSeverity
            },
            'by_type': dict(CounterDict(e.error_type for e in errors)),
            'by_component': dict(CounterDict(e.component for e in errors)),
            'recent_errors': [
                {
                    'timestamp': e.timestamp.isoformat(),
                    'component': e.component,
                    'operation': e.operation,
                    'error_type': e.error_type,
                    'message': e.message,
                }
                for e in reversed(errors[-recent:])
            ]
        }
