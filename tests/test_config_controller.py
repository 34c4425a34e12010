"""
Controller config handler tests.

Field application, SMTP validation and the init/update signals.
"""
import asyncio

import pytest

from cicd_operator.configs import controller
from cicd_operator.errors import ConfigValidationError
from cicd_operator.signals import CoalescingSignal


def test_defaults_applied_for_missing_fields():
    controller.apply_controller_config_change({})

    assert controller.MAX_PIPELINE_RUN.get() == 5
    assert controller.ENABLE_MAIL.get() is False
    assert controller.EXPOSE_MODE.get() == "Ingress"
    assert controller.COLLECT_PERIOD.get() == 120
    assert controller.INTEGRATION_JOB_TTL.get() == 120
    assert controller.GIT_IMAGE.get() == "docker.io/alpine/git:1.0.30"
    assert controller.EXTERNAL_HOST_NAME.get() == ""


def test_values_applied():
    controller.apply_controller_config_change({
        "maxPipelineRun": "3",
        "externalHostName": "cicd.example.com",
        "exposeMode": "LoadBalancer",
        "collectPeriod": "24",
        "integrationJobTTL": "48",
    })

    assert controller.MAX_PIPELINE_RUN.get() == 3
    assert controller.EXTERNAL_HOST_NAME.get() == "cicd.example.com"
    assert controller.EXPOSE_MODE.get() == "LoadBalancer"
    assert controller.COLLECT_PERIOD.get() == 24
    assert controller.INTEGRATION_JOB_TTL.get() == 48


def test_mail_without_smtp_host_is_rejected_after_applying():
    with pytest.raises(ConfigValidationError):
        controller.apply_controller_config_change({
            "enableMail": "true",
            "smtpHost": "",
            "smtpUserSecret": "smtp-secret",
        })

    # Fields were applied before validation
    assert controller.ENABLE_MAIL.get() is True
    assert controller.SMTP_USER_SECRET.get() == "smtp-secret"
    assert controller.is_controller_initiated() is False


def test_mail_without_smtp_secret_is_rejected():
    with pytest.raises(ConfigValidationError):
        controller.apply_controller_config_change({"enableMail": "true", "smtpHost": "smtp:25"})


def test_mail_with_smtp_access_info():
    controller.apply_controller_config_change({
        "enableMail": "TRUE",
        "smtpHost": "smtp:25",
        "smtpUserSecret": "smtp-secret",
    })
    assert controller.ENABLE_MAIL.get() is True


def test_initialized_signal_emitted_once():
    controller.apply_controller_config_change({})
    assert controller.is_controller_initiated() is True
    assert controller.controller_initialized.consume() is True

    controller.apply_controller_config_change({"maxPipelineRun": "2"})
    assert controller.controller_initialized.pending is False


def test_update_signals_notified_without_blocking():
    first = CoalescingSignal()
    second = CoalescingSignal()
    controller.register_controller_config_update_signal(first)
    controller.register_controller_config_update_signal(second)

    controller.apply_controller_config_change({})
    assert first.consume() is True

    # second already holds a pending notification; it is not queued twice
    controller.apply_controller_config_change({})
    assert first.consume() is True
    assert second.consume() is True
    assert second.consume() is False


def test_update_signals_skipped_on_validation_error():
    signal = CoalescingSignal()
    controller.register_controller_config_update_signal(signal)

    with pytest.raises(ConfigValidationError):
        controller.apply_controller_config_change({"enableMail": "true"})
    assert signal.pending is False


def test_email_templates():
    controller.apply_email_template_config_change({"request-title": "Approve {{.Name}}"})

    assert controller.APPROVAL_REQUEST_MAIL_TITLE.get() == "Approve {{.Name}}"
    assert controller.APPROVAL_REQUEST_MAIL_CONTENT.get() == "{{.Name}}"
    assert controller.APPROVAL_RESULT_MAIL_TITLE.get() == "[CI/CD] Approval is {{.Status.Result}}"


def test_initialized_signal_can_be_awaited_on_a_new_event_loop():
    async def wait_for_initialization():
        waiter = asyncio.ensure_future(controller.controller_initialized.wait())
        await asyncio.sleep(0)
        controller.apply_controller_config_change({})
        await asyncio.wait_for(waiter, timeout=1.0)

    asyncio.run(wait_for_initialization())
    controller.reset()
    asyncio.run(wait_for_initialization())
