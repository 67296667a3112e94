"""bicepguardのコマンドラインインターフェース。

Commands:
    - run: チェックスイート（compilation, parameters, template-toolkit, security, naming, cost）
    - lint: infra/ 配下のBicepとJSONのLint
    - scan: 任意のテキストファイルに対するパターンスキャン
    - network: VNet・サブネットのCIDR検証
    - install-hook: Git pre-commitフックのインストール
    - doctor: 開発環境の診断
"""

import asyncio
import logging
import sys
from pathlib import Path

import click

from bicepguard.config import CHECK_NAMES, GuardConfig
from bicepguard.models.errors import BicepGuardError
from bicepguard.models.network import NetworkConfig
from bicepguard.models.tooling import LintReport, ToolStatus
from bicepguard.models.validation import RunSummary, ValidationResult
from bicepguard.services.devenv import diagnose, install_pre_commit_hook
from bicepguard.services.lint import WorkspaceLinter
from bicepguard.services.runner import run_suite
from bicepguard.services.toolchain import BicepToolchain
from bicepguard.validators.network import validate_network_config
from bicepguard.validators.patterns import TemplateScanner

logger = logging.getLogger(__name__)

__all__ = ["main"]


def _status(passed: bool) -> str:
    return click.style("PASS", fg="green") if passed else click.style("FAIL", fg="red")


def _echo_result(result: ValidationResult) -> None:
    click.echo(f"  {_status(result.passed)}  {result.test_name}")
    if not result.passed:
        click.echo(f"        {result.error_kind}: {result.error}")


def _echo_summary(summary: RunSummary) -> None:
    click.echo()
    click.echo(click.style("Validation results", bold=True))
    for result in summary.results:
        _echo_result(result)
    click.echo()
    color = "green" if summary.exit_code == 0 else "red"
    click.echo(click.style(summary.summary_line(), fg=color, bold=True))


def _echo_lint(report: LintReport, root: Path) -> None:
    for finding in report.findings:
        rel = finding.path.relative_to(root) if finding.path.is_relative_to(root) else finding.path
        click.echo(f"  {_status(finding.passed)}  {rel}")
        if not finding.passed and finding.message:
            click.echo(f"        {finding.message}")
    if report.aborted:
        click.echo(click.style("Stopped at first failure (--ci)", fg="yellow"))
    if report.exit_code == 0:
        click.echo(click.style("Linting complete!", fg="green"))
    else:
        click.echo(click.style(f"{len(report.failed)} file(s) failed linting", fg="red"))


def _echo_status(status: ToolStatus) -> None:
    if status.available:
        mark = click.style("OK", fg="green")
    elif status.required:
        mark = click.style("MISSING", fg="red")
    else:
        mark = click.style("OPTIONAL", fg="yellow")
    detail = f" ({status.detail})" if status.detail else ""
    click.echo(f"  {mark:<18} {status.name}{detail}")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option(
    "--project-root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: current directory).",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, project_root: Path | None) -> None:
    """Validation toolkit for Bicep-based Azure Container Apps deployments."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = GuardConfig()
    if project_root is not None:
        config = config.model_copy(update={"project_root": project_root.resolve()})
    ctx.obj = config


@main.command()
@click.option("--template", type=click.Path(path_type=Path), default=None, help="Bicep template path.")
@click.option("--parameters", type=click.Path(path_type=Path), default=None, help="Parameters file path.")
@click.option("--environment", default=None, help="Target environment (dev, staging, prod).")
@click.option("--skip", multiple=True, type=click.Choice(CHECK_NAMES), help="Skip a check category.")
@click.pass_obj
def run(
    config: GuardConfig,
    template: Path | None,
    parameters: Path | None,
    environment: str | None,
    skip: tuple[str, ...],
) -> None:
    """Run the validation suite and exit non-zero if any check fails."""
    update: dict[str, object] = {}
    if template is not None:
        update["template_path"] = template.resolve()
    if parameters is not None:
        update["parameters_path"] = parameters.resolve()
    if environment is not None:
        update["environment"] = environment
    if skip:
        update["enabled_categories"] = tuple(c for c in config.enabled_categories if c not in skip)
    if update:
        config = config.model_copy(update=update)

    logger.debug("running suite with %s", config)
    try:
        summary = asyncio.run(run_suite(config))
    except BicepGuardError as e:
        raise click.ClickException(str(e)) from e
    _echo_summary(summary)
    sys.exit(summary.exit_code)


@main.command()
@click.option("--ci", is_flag=True, help="Stop at the first failure.")
@click.pass_obj
def lint(config: GuardConfig, ci: bool) -> None:
    """Lint infra/*.bicep, infra/modules/*.bicep and JSON files."""
    toolchain = BicepToolchain(az_command=config.az_command, timeout=config.tool_timeout)
    report = asyncio.run(WorkspaceLinter(config.project_root, toolchain).run(ci=ci))
    _echo_lint(report, config.project_root)
    sys.exit(report.exit_code)


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--category", type=click.Choice(["security", "naming"]), default=None)
@click.pass_obj
def scan(config: GuardConfig, file: Path, category: str | None) -> None:
    """Scan a rendered template FILE for naming and security patterns."""
    try:
        scanner = TemplateScanner.from_directory(config.rules_dir)
        scanner.require_categories([category] if category else ["security", "naming"])  # type: ignore[list-item]
    except BicepGuardError as e:
        raise click.ClickException(str(e)) from e
    result = scanner.scan(file.read_text(encoding="utf-8"), test_name=file.name, category=category)  # type: ignore[arg-type]
    _echo_result(result)
    sys.exit(0 if result.passed else 1)


@main.command()
@click.option("--vnet", required=True, help="VNet address prefix, e.g. 10.0.0.0/16.")
@click.option("--subnet", required=True, help="Container Apps subnet prefix.")
@click.option("--pe-subnet", required=True, help="Private endpoint subnet prefix.")
def network(vnet: str, subnet: str, pe_subnet: str) -> None:
    """Validate a VNet and its two subnet prefixes."""
    result = validate_network_config(
        NetworkConfig(vnet_prefix=vnet, subnet_prefix=subnet, private_endpoint_subnet_prefix=pe_subnet)
    )
    _echo_result(result)
    sys.exit(0 if result.passed else 1)


@main.command("install-hook")
@click.pass_obj
def install_hook(config: GuardConfig) -> None:
    """Install the Git pre-commit hook running `bicepguard lint --ci`."""
    try:
        hook = install_pre_commit_hook(config.project_root)
    except BicepGuardError as e:
        raise click.ClickException(str(e)) from e
    click.echo(click.style(f"Installed pre-commit hook: {hook}", fg="green"))


@main.command()
@click.pass_obj
def doctor(config: GuardConfig) -> None:
    """Check development tools and expected project files."""
    toolchain = BicepToolchain(az_command=config.az_command, timeout=config.tool_timeout)
    report = asyncio.run(diagnose(config.project_root, toolchain))

    click.echo(click.style("Development tools", bold=True))
    for status in report.tools:
        _echo_status(status)
    click.echo(click.style("Project files", bold=True))
    for status in report.files:
        _echo_status(status)
    sys.exit(0 if report.healthy else 1)
