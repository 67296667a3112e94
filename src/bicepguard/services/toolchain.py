"""外部CLI（az bicep）の呼び出しを行うサービス。"""

import asyncio
import logging
import shlex
from pathlib import Path

from bicepguard.models.errors import ExternalToolFailureError, MalformedInputError, ToolTimeoutError
from bicepguard.models.tooling import RenderedOutput, ToolResult

logger = logging.getLogger(__name__)

# コマンド未検出時の終了コード
_COMMAND_NOT_FOUND_EXIT_CODE = 127

_AZ_CLI_HINT = "Install from: https://docs.microsoft.com/en-us/cli/azure/install-azure-cli"
_BICEP_HINT = "Install with: az bicep install"


class BicepToolchain:
    """az bicep のビルド・Lintを実行する。

    コンパイルやLintの実体は外部CLIが担い、ここでは呼び出しと結果の変換のみ行う。
    """

    def __init__(self, az_command: str = "az", timeout: float = 120.0) -> None:
        self._az_command = az_command
        self._timeout = timeout

    async def _run_subprocess(self, args: list[str], cwd: str | None = None) -> tuple[int, str, str]:
        """サブプロセスを非同期で実行し、結果を返す。

        Args:
            args: 実行するコマンドと引数のリスト。
            cwd: 作業ディレクトリ。

        Returns:
            (exit_code, stdout, stderr) のタプル。

        Raises:
            ToolTimeoutError: タイムアウトまでに終了しなかった場合。プロセスはkillされる。
        """
        command = shlex.join(args)
        logger.debug("running: %s", command)
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
            )
        except FileNotFoundError:
            return _COMMAND_NOT_FOUND_EXIT_CODE, "", f"Command not found: {args[0]}"

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except TimeoutError as e:
            proc.kill()
            await proc.wait()
            logger.warning("timed out after %gs: %s", self._timeout, command)
            raise ToolTimeoutError(command, self._timeout) from e

        exit_code = proc.returncode or 0
        logger.debug("exit code %d: %s", exit_code, command)
        return (
            exit_code,
            stdout_bytes.decode("utf-8", errors="replace"),
            stderr_bytes.decode("utf-8", errors="replace"),
        )

    async def run(self, args: list[str], cwd: str | None = None) -> ToolResult:
        """任意のコマンドを実行し、ToolResultとして返す。"""
        exit_code, stdout, stderr = await self._run_subprocess(args, cwd=cwd)
        return ToolResult(
            success=exit_code == 0,
            command=shlex.join(args),
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
        )

    @staticmethod
    def _require_file(path: Path) -> None:
        if not path.is_file():
            raise MalformedInputError(f"Template not found: {path}")

    def _raise_for_failure(self, result: ToolResult, action: str) -> None:
        if result.success:
            return
        hint = ""
        if result.exit_code == _COMMAND_NOT_FOUND_EXIT_CODE:
            hint = f" ({_AZ_CLI_HINT})"
        message = f"{action} failed with exit code {result.exit_code}{hint}"
        raise ExternalToolFailureError(message, stderr=result.stderr.strip(), exit_code=result.exit_code)

    async def compile(self, path: Path) -> RenderedOutput:
        """Bicepテンプレートをビルドし、ARMテンプレートのテキストを返す。

        Raises:
            MalformedInputError: テンプレートファイルが存在しない場合。
            ExternalToolFailureError: ビルドが失敗した場合。
            ToolTimeoutError: タイムアウトした場合。
        """
        self._require_file(path)
        result = await self.run([self._az_command, "bicep", "build", "--file", str(path), "--stdout"])
        self._raise_for_failure(result, f"Bicep build of {path}")
        return RenderedOutput(template_path=path, text=result.stdout)

    async def lint(self, path: Path) -> ToolResult:
        """Bicepテンプレートに対して az bicep lint を実行する。

        Raises:
            MalformedInputError: テンプレートファイルが存在しない場合。
            ExternalToolFailureError: Lintで問題が検出された場合。
            ToolTimeoutError: タイムアウトした場合。
        """
        self._require_file(path)
        result = await self.run([self._az_command, "bicep", "lint", "--file", str(path)])
        self._raise_for_failure(result, f"Bicep lint of {path}")
        return result

    async def version(self, *args: str) -> str | None:
        """ツールのバージョン文字列を返す。利用できない場合はNone。"""
        try:
            result = await self.run(list(args))
        except ToolTimeoutError:
            return None
        if not result.success:
            return None
        return result.stdout.strip() or result.stderr.strip()

    async def az_version(self) -> str | None:
        return await self.version(self._az_command, "version", "--query", '"azure-cli"', "-o", "tsv")

    async def bicep_version(self) -> str | None:
        return await self.version(self._az_command, "bicep", "version")

    @property
    def bicep_hint(self) -> str:
        return _BICEP_HINT

    @property
    def az_hint(self) -> str:
        return _AZ_CLI_HINT
