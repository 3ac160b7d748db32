from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from proven import ProvenOutput, AccessPolicy, policy_from_dict, policy_to_dict


class PolicyModel(BaseModel):
    type: Literal["public", "whitelist", "per_code_secret"]
    secret: str = ""
    allowed_code_hashes: List[str] = Field(default_factory=list)
    secrets: Dict[str, str] = Field(default_factory=dict)

    def to_policy(self) -> AccessPolicy:
        """Raises ValueError on malformed hashes."""
        return policy_from_dict(self.model_dump())

    @classmethod
    def from_policy(cls, policy: AccessPolicy) -> "PolicyModel":
        return cls(**policy_to_dict(policy))


class RunJsRequest(BaseModel):
    code: str
    args: List[str] = Field(default_factory=list)
    secret: Optional[str] = None


class RunJsFromUrlRequest(BaseModel):
    url: str
    args: List[str] = Field(default_factory=list)


class AskRequest(BaseModel):
    model: str
    prompt: str


class TransferOwnershipRequest(BaseModel):
    new_owner: str


class UpdateConfigRequest(BaseModel):
    policy: PolicyModel


class UpdateSecretRequest(BaseModel):
    secret: str


class AllowCodeHashRequest(BaseModel):
    code_hash: str


class SetSecretRequest(BaseModel):
    code_hash: str
    secret: str


class ProvenOutputModel(BaseModel):
    payload: str
    signature: str
    pubkey: str

    @classmethod
    def from_output(cls, out: ProvenOutput) -> "ProvenOutputModel":
        return cls(**out.to_dict())


class ConfigResponse(BaseModel):
    owner: str
    policy: PolicyModel
