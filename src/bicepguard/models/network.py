"""ネットワーク構成関連のデータモデル。"""

from typing import Any

from pydantic import BaseModel, ConfigDict

_FULL_MASK = 0xFFFFFFFF

# パラメータファイル上のキー名
VNET_PREFIX_PARAM = "vnetAddressPrefix"
SUBNET_PREFIX_PARAM = "containerAppsSubnetPrefix"
PRIVATE_ENDPOINT_SUBNET_PREFIX_PARAM = "privateEndpointSubnetPrefix"


class CidrBlock(BaseModel):
    """パース済みのIPv4 CIDRブロック。"""

    model_config = ConfigDict(frozen=True)

    octets: tuple[int, int, int, int]
    prefix_length: int

    def __str__(self) -> str:
        return f"{'.'.join(str(o) for o in self.octets)}/{self.prefix_length}"

    @property
    def base_address(self) -> int:
        a, b, c, d = self.octets
        return (a << 24) | (b << 16) | (c << 8) | d

    @property
    def mask(self) -> int:
        return (_FULL_MASK << (32 - self.prefix_length)) & _FULL_MASK

    @property
    def network_address(self) -> int:
        return self.base_address & self.mask

    @property
    def broadcast_address(self) -> int:
        return self.network_address | (~self.mask & _FULL_MASK)


class NetworkConfig(BaseModel):
    """VNetと2つのサブネットから成るネットワーク構成。

    値は未パースの文字列のまま保持し、不正値はバリデータ側で結果として扱う。
    """

    model_config = ConfigDict(frozen=True)

    vnet_prefix: str
    subnet_prefix: str
    private_endpoint_subnet_prefix: str

    @classmethod
    def from_parameters(cls, parameters: dict[str, Any]) -> "NetworkConfig":
        """`{name: value}` 形式に展開済みのパラメータから構築する。"""
        return cls(
            vnet_prefix=str(parameters.get(VNET_PREFIX_PARAM, "")),
            subnet_prefix=str(parameters.get(SUBNET_PREFIX_PARAM, "")),
            private_endpoint_subnet_prefix=str(parameters.get(PRIVATE_ENDPOINT_SUBNET_PREFIX_PARAM, "")),
        )
