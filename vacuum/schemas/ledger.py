from typing import Optional

from pydantic import BaseModel, ConfigDict


class AccountInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    lamports: int
    owner: str  # owning program
    data_len: int = 0
    executable: bool = False


class TokenAccountInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    mint: str
    owner: str
    amount: int
    lamports: int
    program_id: Optional[str] = None


class OwnedTokenAccount(BaseModel):
    model_config = ConfigDict(extra="ignore")

    address: str
    mint: str
    owner: str
    amount: int
    ui_amount: Optional[float] = None
    lamports: Optional[int] = None
