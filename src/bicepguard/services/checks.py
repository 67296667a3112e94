"""チェックスイートを構成する個別チェック。

各チェックは CheckContext を受け取り ValidationResult を返す。失敗は例外ではなく
結果データとして返し、想定外の例外も UnexpectedFailure に変換する。
"""

import json
import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any

from bicepguard.config import DEFAULT_ENVIRONMENT, GuardConfig
from bicepguard.models.errors import (
    BicepGuardError,
    ExternalToolFailureError,
    MalformedInputError,
    MissingRequiredFieldError,
    PolicyViolationError,
    ToolTimeoutError,
)
from bicepguard.models.network import NetworkConfig
from bicepguard.models.tooling import RenderedOutput
from bicepguard.models.validation import ErrorKind, RuleCategory, ValidationResult
from bicepguard.services.toolchain import BicepToolchain
from bicepguard.validators.network import validate_network_config
from bicepguard.validators.patterns import TemplateScanner

logger = logging.getLogger(__name__)


def error_kind_for(error: Exception) -> ErrorKind:
    """例外を ErrorKind に対応付ける。"""
    if isinstance(error, ToolTimeoutError):
        return "Timeout"
    if isinstance(error, ExternalToolFailureError):
        return "ExternalToolFailure"
    if isinstance(error, MissingRequiredFieldError):
        return "MissingRequiredField"
    if isinstance(error, PolicyViolationError):
        return "PolicyViolation"
    if isinstance(error, MalformedInputError):
        return "MalformedInput"
    return "UnexpectedFailure"


def describe_error(error: Exception) -> str:
    message = str(error) or type(error).__name__
    if isinstance(error, ExternalToolFailureError) and error.stderr:
        return f"{message}: {error.stderr}"
    return message


class CheckContext:
    """1回の実行で各チェックが共有する読み取り専用の入力。

    ビルド結果とパラメータはチェック間で再利用するため遅延評価してキャッシュする。
    """

    def __init__(self, config: GuardConfig, toolchain: BicepToolchain, scanner: TemplateScanner) -> None:
        self.config = config
        self.toolchain = toolchain
        self.scanner = scanner
        self._rendered: RenderedOutput | None = None
        self._render_error: BicepGuardError | None = None
        self._parameters: dict[str, Any] | None = None

    async def rendered(self) -> RenderedOutput:
        """ビルド結果を返す。失敗した場合は同じ例外を再送出し、再ビルドはしない。"""
        if self._render_error is not None:
            raise self._render_error
        if self._rendered is None:
            try:
                self._rendered = await self.toolchain.compile(self.config.template_file)
            except BicepGuardError as e:
                self._render_error = e
                raise
        return self._rendered

    def template_source(self) -> str:
        path = self.config.template_file
        if not path.is_file():
            raise MalformedInputError(f"Template not found: {path}")
        return path.read_text(encoding="utf-8")

    async def scan_text(self) -> str:
        """スキャン対象テキスト。Bicepソースとビルド結果を連結する。

        ビルドに失敗した場合はBicepソースのみを返す。
        """
        source = self.template_source()
        try:
            rendered = await self.rendered()
        except ExternalToolFailureError:
            logger.info("build failed; scanning Bicep source only")
            return source
        return f"{source}\n{rendered.text}"

    def parameters(self) -> dict[str, Any]:
        """パラメータファイルを読み込み、`{name: value}` に展開して返す。

        Raises:
            MalformedInputError: ファイルが存在しない、またはJSON形式が不正な場合。
        """
        if self._parameters is not None:
            return self._parameters

        path = self.config.parameters_file
        if not path.is_file():
            raise MalformedInputError(f"Parameters file not found: {path}")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise MalformedInputError(f"Invalid JSON in {path}: {e}") from e

        entries = data.get("parameters") if isinstance(data, dict) else None
        if not isinstance(entries, dict):
            raise MalformedInputError(f"{path} has no 'parameters' object")

        parameters: dict[str, Any] = {}
        for name, wrapper in entries.items():
            # Key Vault参照（{"reference": ...}）は値を持たないが存在扱いとする
            parameters[name] = wrapper.get("value") if isinstance(wrapper, dict) else wrapper
        self._parameters = parameters
        return parameters


class Check:
    """名前付きのチェック。呼び出すと ValidationResult を返す。"""

    def __init__(self, name: str, func: Callable[[CheckContext], Awaitable[ValidationResult]]) -> None:
        self.name = name
        self._func = func

    async def __call__(self, ctx: CheckContext) -> ValidationResult:
        return await self._func(ctx)

    def __repr__(self) -> str:
        return f"Check({self.name!r})"


def check(name: str) -> Callable[[Callable[[CheckContext], Awaitable[None]]], Check]:
    """違反時に BicepGuardError を送出する関数を Check に変換するデコレータ。"""

    def decorator(func: Callable[[CheckContext], Awaitable[None]]) -> Check:
        @wraps(func)
        async def wrapper(ctx: CheckContext) -> ValidationResult:
            try:
                await func(ctx)
            except BicepGuardError as e:
                logger.info("%s failed: %s", name, e)
                return ValidationResult.failure(name, describe_error(e), error_kind_for(e))
            except Exception as e:
                logger.exception("%s raised unexpectedly", name)
                return ValidationResult.failure(name, describe_error(e), "UnexpectedFailure")
            return ValidationResult.success(name)

        return Check(name, wrapper)

    return decorator


@check("compilation")
async def compilation_check(ctx: CheckContext) -> None:
    """テンプレートがビルドできることを確認する。"""
    await ctx.rendered()


@check("parameters")
async def parameters_check(ctx: CheckContext) -> None:
    """必須パラメータの存在とネットワーク構成を確認する。"""
    parameters = ctx.parameters()
    for name in ctx.config.required_parameters:
        if name not in parameters:
            raise MissingRequiredFieldError(name)

    result = validate_network_config(NetworkConfig.from_parameters(parameters), test_name="parameters")
    if not result.passed:
        if result.error_kind == "MalformedInput":
            raise MalformedInputError(result.error)
        raise PolicyViolationError(result.error)


@check("template-toolkit")
async def template_toolkit_check(ctx: CheckContext) -> None:
    """az bicep lint で問題がないことを確認する。"""
    await ctx.toolchain.lint(ctx.config.template_file)


async def _scan(ctx: CheckContext, text: str, category: RuleCategory) -> None:
    result = ctx.scanner.scan(text, test_name=category, category=category)
    if not result.passed:
        raise PolicyViolationError(result.error)


@check("security")
async def security_check(ctx: CheckContext) -> None:
    """シークレット直書き・HTTP参照・マネージドID・Key Vault参照を検査する。"""
    await _scan(ctx, await ctx.scan_text(), "security")


@check("naming")
async def naming_check(ctx: CheckContext) -> None:
    """CAF命名規則のプレフィックスを検査する。"""
    await _scan(ctx, await ctx.scan_text(), "naming")


def _as_number(parameters: dict[str, Any], name: str) -> float | None:
    value = parameters.get(name)
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise MalformedInputError(f"Parameter '{name}' is not numeric: {value!r}") from e


@check("cost")
async def cost_check(ctx: CheckContext) -> None:
    """環境ごとの削減係数を適用したリソース上限を超えていないか確認する。"""
    parameters = ctx.parameters()
    # 明示的に設定された環境がパラメータファイルの environmentName より優先する
    environment = str(ctx.config.environment or parameters.get("environmentName") or DEFAULT_ENVIRONMENT)
    factor = ctx.config.reduction_factors.get(environment)
    if factor is None:
        raise MalformedInputError(f"Unknown environment '{environment}'")

    limits = ctx.config.cost_limits
    max_replicas_limit = max(1, int(limits.max_replicas * factor))
    cpu_limit = limits.container_cpu * factor

    violations: list[str] = []
    min_replicas = _as_number(parameters, "minReplicas")
    max_replicas = _as_number(parameters, "maxReplicas")
    cpu = _as_number(parameters, "containerCpu")

    if min_replicas is not None and max_replicas is not None and min_replicas > max_replicas:
        violations.append(f"minReplicas {min_replicas:g} exceeds maxReplicas {max_replicas:g}")
    if max_replicas is not None and max_replicas > max_replicas_limit:
        violations.append(f"maxReplicas {max_replicas:g} exceeds {environment} limit {max_replicas_limit}")
    if cpu is not None and cpu > cpu_limit:
        violations.append(f"containerCpu {cpu:g} exceeds {environment} limit {cpu_limit:g}")

    if violations:
        raise PolicyViolationError("; ".join(violations))


DEFAULT_CHECKS: tuple[Check, ...] = (
    compilation_check,
    parameters_check,
    template_toolkit_check,
    security_check,
    naming_check,
    cost_check,
)
