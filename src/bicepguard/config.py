"""bicepguardの設定管理。"""

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

_PACKAGE_ROOT = Path(__file__).parent

DEFAULT_ENVIRONMENT = "dev"

CHECK_NAMES: tuple[str, ...] = (
    "compilation",
    "parameters",
    "template-toolkit",
    "security",
    "naming",
    "cost",
)


class CostLimits(BaseModel):
    """本番環境を基準としたリソース上限。環境ごとに削減係数を掛けて適用する。"""

    max_replicas: int = 10
    container_cpu: float = 2.0


class GuardConfig(BaseSettings):
    """チェック実行設定。環境変数から読み込み可能。

    インスタンスは不変。CLIオプションでの上書きは model_copy(update=...) で行う。
    """

    model_config = {"env_prefix": "BICEPGUARD_", "frozen": True}

    project_root: Path = Field(default_factory=Path.cwd)
    template_path: Path = Path("infra/main.bicep")
    parameters_path: Path = Path("infra/main.parameters.json")
    rules_dir: Path = _PACKAGE_ROOT / "rules"

    az_command: str = "az"
    tool_timeout: float = 120.0

    # 未設定の場合はパラメータファイルの environmentName を使う
    environment: str | None = None
    enabled_categories: tuple[str, ...] = CHECK_NAMES
    required_parameters: tuple[str, ...] = (
        "location",
        "environmentName",
        "vnetAddressPrefix",
        "containerAppsSubnetPrefix",
        "privateEndpointSubnetPrefix",
    )

    cost_limits: CostLimits = CostLimits()
    reduction_factors: dict[str, float] = {"dev": 0.5, "staging": 0.75, "prod": 1.0}

    def resolve(self, path: Path) -> Path:
        """project_root からの相対パスを絶対パスに解決する。"""
        return path if path.is_absolute() else self.project_root / path

    @property
    def template_file(self) -> Path:
        return self.resolve(self.template_path)

    @property
    def parameters_file(self) -> Path:
        return self.resolve(self.parameters_path)

    def is_enabled(self, check_name: str) -> bool:
        return check_name in self.enabled_categories
