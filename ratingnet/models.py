from pydantic import BaseModel, Field
from typing import List


class HandleContractPair(BaseModel):
    handle: str
    contract_address: str


class GrantRequest(BaseModel):
    user_address: str
    contract_addresses: List[str]
    start_timestamp: int
    duration_days: int
    public_key: str
    signature: str
    chain_id: int
    verifying_contract: str


class UserDecryptRequest(BaseModel):
    handle_contract_pairs: List[HandleContractPair] = Field(default_factory=list)
    grant: GrantRequest
