"""
Operator runtime configuration.

Process-wide settings read by the scheduler, the collector and the API, and
the handlers that apply the ``cicd-config`` and ``email-template`` config
resources to them. Handlers run one at a time from the config watch loop;
readers may be anywhere.
"""
import logging
from typing import List, Mapping

from ..signals import CoalescingSignal
from ..errors import ConfigValidationError
from .variables import ConfigKind, ConfigVar, apply_vars

logger = logging.getLogger(__name__)

# Names of config resources
CONFIG_NAME_CICD_CONFIG = "cicd-config"
CONFIG_NAME_EMAIL_TEMPLATE = "email-template"

# Controller config
MAX_PIPELINE_RUN = ConfigVar("maxPipelineRun", ConfigKind.INT, default=5, description="Number of jobs that can run simultaneously")
ENABLE_MAIL = ConfigVar("enableMail", ConfigKind.BOOL, default=False, description="Whether the mail feature is enabled")
EXTERNAL_HOST_NAME = ConfigVar("externalHostName", ConfigKind.STRING, description="Host name of the webhook server")
EXPOSE_MODE = ConfigVar("exposeMode", ConfigKind.STRING, default="Ingress", description="Ingress, LoadBalancer or ClusterIP")
REPORT_REDIRECT_URI_TEMPLATE = ConfigVar("reportRedirectUriTemplate", ConfigKind.STRING, description="URI template for report page redirection")
SMTP_HOST = ConfigVar("smtpHost", ConfigKind.STRING, description="Host (IP:PORT) of the SMTP server")
SMTP_USER_SECRET = ConfigVar("smtpUserSecret", ConfigKind.STRING, description="Credential secret for the SMTP server")
COLLECT_PERIOD = ConfigVar("collectPeriod", ConfigKind.INT, default=120, description="Garbage collection period in hours")
INTEGRATION_JOB_TTL = ConfigVar("integrationJobTTL", ConfigKind.INT, default=120, description="Hours a finished job is kept")
INGRESS_CLASS = ConfigVar("ingressClass", ConfigKind.STRING, description="Class of the ingress instance")
INGRESS_HOST = ConfigVar("ingressHost", ConfigKind.STRING, description="Host of the ingress instance")
GIT_IMAGE = ConfigVar("gitImage", ConfigKind.STRING, default="docker.io/alpine/git:1.0.30", description="Image for the git checkout step")

CONTROLLER_VARS: List[ConfigVar] = [
    MAX_PIPELINE_RUN,
    ENABLE_MAIL,
    EXTERNAL_HOST_NAME,
    EXPOSE_MODE,
    REPORT_REDIRECT_URI_TEMPLATE,
    SMTP_HOST,
    SMTP_USER_SECRET,
    COLLECT_PERIOD,
    INTEGRATION_JOB_TTL,
    INGRESS_CLASS,
    INGRESS_HOST,
    GIT_IMAGE,
]

# Email templates
APPROVAL_REQUEST_MAIL_TITLE = ConfigVar("request-title", ConfigKind.STRING, default="[CI/CD] Approval '{{.Name}}' is requested to you")
APPROVAL_REQUEST_MAIL_CONTENT = ConfigVar("request-content", ConfigKind.STRING, default="{{.Name}}")
APPROVAL_RESULT_MAIL_TITLE = ConfigVar("result-title", ConfigKind.STRING, default="[CI/CD] Approval is {{.Status.Result}}")
APPROVAL_RESULT_MAIL_CONTENT = ConfigVar("result-content", ConfigKind.STRING, default="{{.Name}}")

EMAIL_TEMPLATE_VARS: List[ConfigVar] = [
    APPROVAL_REQUEST_MAIL_TITLE,
    APPROVAL_REQUEST_MAIL_CONTENT,
    APPROVAL_RESULT_MAIL_TITLE,
    APPROVAL_RESULT_MAIL_CONTENT,
]

# Emitted once, after the first successful controller config application
controller_initialized = CoalescingSignal("controller-initialized")
_controller_initiated = False

_controller_config_update_signals: List[CoalescingSignal] = []


def register_controller_config_update_signal(signal: CoalescingSignal) -> None:
    """Register a signal notified after every controller config change."""
    _controller_config_update_signals.append(signal)


def is_controller_initiated() -> bool:
    return _controller_initiated


def apply_controller_config_change(data: Mapping[str, str]) -> None:
    """
    Handler for the cicd-config resource.

    Raises:
        ConfigValidationError: If mail is enabled without SMTP access info.
            Fields are applied anyway and subscribers are not notified.
    """
    global _controller_initiated

    apply_vars(data, CONTROLLER_VARS)

    if ENABLE_MAIL.get() and (SMTP_HOST.get() == "" or SMTP_USER_SECRET.get() == ""):
        raise ConfigValidationError("email is enabled but smtp access info is not given")

    if not _controller_initiated:
        _controller_initiated = True
        controller_initialized.notify()
        logger.info("Controller config initialized")

    for signal in _controller_config_update_signals:
        signal.notify()


def apply_email_template_config_change(data: Mapping[str, str]) -> None:
    """Handler for the email-template resource."""
    apply_vars(data, EMAIL_TEMPLATE_VARS)


def reset() -> None:
    """Reset all settings and signals (for testing)."""
    global _controller_initiated, controller_initialized
    for var in CONTROLLER_VARS + EMAIL_TEMPLATE_VARS:
        var.reset()
    _controller_initiated = False
    # A waited-on queue stays bound to its event loop
    controller_initialized = CoalescingSignal("controller-initialized")
    _controller_config_update_signals.clear()
