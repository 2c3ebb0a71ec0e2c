"""End-to-end SDLC flow across Gitea, Jenkins, Nexus, SonarQube and nginx."""

from .errors import FlowStepFailed, SdlcFlowError
from .orchestrator import FlowResult, FlowServices, FlowUi, SdlcFlow, StepOutcome, StepRecord
from .run_log import RunLog
from .settings import FlowSettings

__all__ = [
    'FlowResult',
    'FlowServices',
    'FlowSettings',
    'FlowStepFailed',
    'FlowUi',
    'RunLog',
    'SdlcFlow',
    'SdlcFlowError',
    'StepOutcome',
    'StepRecord',
]
