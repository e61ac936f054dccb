# provisioner/component_installer.py
# -*- coding: utf-8 -*-
"""
Provides the generic probe -> act -> verify executor for one component.

Whatever happens inside a component's actions is turned into an
InstallationResult here; errors never travel past this boundary, so one
component failing does not stop independent components from being tried.
"""

import logging
from typing import Optional

from common.command_utils import describe_command_failure, get_symbols, log_step
from provisioner.base_component import (
    BaseComponent,
    DependencyUnavailableError,
    InstallationResult,
    InstallOutcome,
    ProbeResult,
    ProbeState,
)
from settings.config_models import BootstrapSettings

module_logger = logging.getLogger(__name__)


def _safe_probe(
    component: BaseComponent, logger_to_use: logging.Logger
) -> ProbeResult:
    try:
        return component.probe()
    except Exception as e:
        logger_to_use.debug(
            f"Probe of {component.name} raised: {e}", exc_info=True
        )
        return ProbeResult(
            ProbeState.ABSENT, f"probe error: {describe_command_failure(e)}"
        )


def install_component(
    component: BaseComponent,
    settings: BootstrapSettings,
    current_logger: Optional[logging.Logger] = None,
) -> InstallationResult:
    """
    Execute one component step.

    1. Probe. SATISFIED -> ALREADY_SATISFIED without touching the host.
    2. INACTIVE -> activate the service, re-probe.
    3. ABSENT -> run the install action, re-probe.

    Args:
        component: The component to process.
        settings: Settings of the current run.
        current_logger: The logger instance to use.

    Returns:
        The InstallationResult for the component. A DependencyUnavailableError
        from the install action yields SKIPPED; any other error, or a
        re-probe that is still not satisfied, yields FAILED.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = get_symbols(settings)
    name = component.name

    log_step(
        f"--- {symbols.get('step', '➡️')} Checking component: {name} ---",
        "info",
        logger_to_use,
        settings,
    )
    description = component.get_description()
    if description:
        logger_to_use.debug(f"{name}: {description}")
    probe = _safe_probe(component, logger_to_use)

    if probe.state is ProbeState.SATISFIED:
        version_info = f" (version: {probe.version})" if probe.version else ""
        log_step(
            f"{symbols.get('success', '✅')} {name} is already installed{version_info}.",
            "success",
            logger_to_use,
            settings,
        )
        return InstallationResult(
            name,
            InstallOutcome.ALREADY_SATISFIED,
            probe.detail or "already satisfied",
            probe.version,
        )

    try:
        if probe.state is ProbeState.INACTIVE:
            log_step(
                f"{symbols.get('info', 'ℹ️')} {name} is installed but not running ({probe.detail}). Activating...",
                "info",
                logger_to_use,
                settings,
            )
            component.activate()
            action = "activated"
        else:
            log_step(
                f"{symbols.get('package', '📦')} {name} not found ({probe.detail or 'absent'}). Installing...",
                "info",
                logger_to_use,
                settings,
            )
            component.install()
            action = "installed"
    except DependencyUnavailableError as e:
        log_step(
            f"{symbols.get('warning', '!')} Skipping {name}: {e}",
            "warning",
            logger_to_use,
            settings,
        )
        return InstallationResult(name, InstallOutcome.SKIPPED, str(e))
    except Exception as e:
        detail = describe_command_failure(e)
        log_step(
            f"{symbols.get('error', '❌')} FAILED: {name}: {detail}",
            "error",
            logger_to_use,
            settings,
        )
        logger_to_use.debug(f"{name} failure traceback", exc_info=True)
        return InstallationResult(name, InstallOutcome.FAILED, detail)

    verification = _safe_probe(component, logger_to_use)
    if not verification.satisfied:
        detail = (
            f"{action}, but verification found it {verification.state.value}"
            f"{': ' + verification.detail if verification.detail else ''}"
        )
        log_step(
            f"{symbols.get('error', '❌')} FAILED: {name}: {detail}",
            "error",
            logger_to_use,
            settings,
        )
        return InstallationResult(name, InstallOutcome.FAILED, detail)

    version_info = (
        f" (version: {verification.version})" if verification.version else ""
    )
    log_step(
        f"{symbols.get('success', '✅')} {name} {action}{version_info}.",
        "success",
        logger_to_use,
        settings,
    )
    return InstallationResult(
        name, InstallOutcome.INSTALLED, action, verification.version
    )
