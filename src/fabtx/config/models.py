"""Pydantic models describing the network configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


class OrdererConfig(BaseModel):
    url: str
    server_hostname: str
    tls_cacerts: Optional[Path] = None


class PeerConfig(BaseModel):
    requests: str
    events: Optional[str] = None
    server_hostname: str
    tls_cacerts: Optional[Path] = None


class OrganizationConfig(BaseModel):
    name: str
    mspid: str
    msp_dir: Optional[Path] = None
    peers: Dict[str, PeerConfig]

    @model_validator(mode="after")
    def ensure_peers(self) -> "OrganizationConfig":
        if not self.peers:
            raise ValueError("at least one peer must be defined")
        return self

    def event_peers(self) -> Dict[str, PeerConfig]:
        return {key: peer for key, peer in self.peers.items() if peer.events}


class ChannelConfig(BaseModel):
    organizations: List[str]
    config: Optional[Path] = None

    @model_validator(mode="after")
    def ensure_organizations(self) -> "ChannelConfig":
        if not self.organizations:
            raise ValueError("organizations must not be empty")
        if len(set(self.organizations)) != len(self.organizations):
            raise ValueError("organizations must be unique per channel")
        return self


class ChaincodeConfig(BaseModel):
    id: str
    path: str
    version: str
    channel: str


class EngineConfig(BaseModel):
    request_timeout: float = 60.0
    submit_timeout: float = 30.0
    invoke_timeout: float = 30.0
    instantiate_timeout: float = 300.0
    min_event_timeout: float = 1.0
    endorsement_mode: Literal["fail_fast", "wait_all"] = "fail_fast"
    commit_policy: Literal["any", "all"] = "any"

    @model_validator(mode="after")
    def check_timeouts(self) -> "EngineConfig":
        for name in (
            "request_timeout",
            "submit_timeout",
            "invoke_timeout",
            "instantiate_timeout",
            "min_event_timeout",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.min_event_timeout > self.invoke_timeout:
            raise ValueError("min_event_timeout must not exceed invoke_timeout")
        return self


class NetworkConfig(BaseModel):
    orderer: OrdererConfig
    organizations: Dict[str, OrganizationConfig]
    channels: Dict[str, ChannelConfig]
    chaincodes: List[ChaincodeConfig] = Field(default_factory=list)
    engine: EngineConfig = Field(default_factory=EngineConfig)

    @model_validator(mode="after")
    def check_references(self) -> "NetworkConfig":
        if not self.organizations:
            raise ValueError("at least one organization must be defined")
        if not self.channels:
            raise ValueError("at least one channel must be defined")
        for channel_name, channel in self.channels.items():
            for org in channel.organizations:
                if org not in self.organizations:
                    raise ValueError(
                        f"channels.{channel_name} references unknown organization {org}"
                    )
        seen_ids: Dict[str, ChaincodeConfig] = {}
        for idx, chaincode in enumerate(self.chaincodes):
            if chaincode.id in seen_ids:
                raise ValueError(f"chaincodes[{idx}].id duplicates chaincode id {chaincode.id}")
            if chaincode.channel not in self.channels:
                raise ValueError(
                    f"chaincodes[{idx}].channel references unknown channel {chaincode.channel}"
                )
            seen_ids[chaincode.id] = chaincode
        return self

    def organization(self, key: str) -> OrganizationConfig:
        try:
            return self.organizations[key]
        except KeyError:
            raise KeyError(f"unknown organization {key}") from None

    def channel(self, name: str) -> ChannelConfig:
        try:
            return self.channels[name]
        except KeyError:
            raise KeyError(f"unknown channel {name}") from None

    def chaincode(self, chaincode_id: str) -> ChaincodeConfig:
        for chaincode in self.chaincodes:
            if chaincode.id == chaincode_id:
                return chaincode
        raise KeyError(f"unknown chaincode {chaincode_id}")

    def channel_peers(self, name: str) -> Dict[str, PeerConfig]:
        """Every peer of every organization joined to channel *name*."""

        peers: Dict[str, PeerConfig] = {}
        for org in self.channel(name).organizations:
            for key, peer in self.organizations[org].peers.items():
                peers[f"{org}.{key}"] = peer
        return peers
