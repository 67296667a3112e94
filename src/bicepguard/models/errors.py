"""bicepguardのカスタム例外クラス。"""


class BicepGuardError(Exception):
    """bicepguardの基底例外クラス。"""


class MalformedInputError(BicepGuardError):
    """入力値（CIDR文字列、ファイル等）が不正な場合の例外。"""


class MissingRequiredFieldError(BicepGuardError):
    """パラメータファイルに必須フィールドが存在しない場合の例外。"""

    def __init__(self, field: str) -> None:
        super().__init__(f"Missing required parameter: {field}")
        self.field = field


class PolicyViolationError(BicepGuardError):
    """ポリシー（パターン・コスト制限等）に違反した場合の例外。"""


class ExternalToolFailureError(BicepGuardError):
    """外部CLI（az bicep等）が非ゼロで終了した場合の例外。"""

    def __init__(self, message: str, stderr: str, exit_code: int) -> None:
        super().__init__(message)
        self.stderr = stderr
        self.exit_code = exit_code


class ToolTimeoutError(BicepGuardError):
    """外部CLIがタイムアウトした場合の例外。"""

    def __init__(self, command: str, timeout: float) -> None:
        super().__init__(f"Command timed out after {timeout:g}s: {command}")
        self.command = command
        self.timeout = timeout
