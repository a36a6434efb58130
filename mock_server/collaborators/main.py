from fastapi import FastAPI, HTTPException
from pathlib import Path
from pydantic import BaseModel
import json
import os

app = FastAPI(title="Mock Auth & Payout Server", version="1.0.0")
# Support both local development and Docker
DATA_DIR = Path("/collaborator_stub") if os.path.exists("/collaborator_stub") else Path(__file__).resolve().parents[2] / "collaborator_stub"


class CredentialCheck(BaseModel):
    account: str
    secret: str


def _accounts() -> dict:
    return json.loads((DATA_DIR / "accounts.json").read_text())["accounts"]


@app.get("/health")
def health(): return {"status": "ok"}

@app.post("/auth/withdrawal-credential/verify")
def verify_withdrawal_credential(body: CredentialCheck):
    account = _accounts().get(body.account)
    if account is None:
        raise HTTPException(status_code=404, detail="account not found")
    return {"valid": body.secret == account["withdrawal_secret"]}

@app.get("/accounts/{account}/payout-methods/{method_id}")
def get_payout_method(account: str, method_id: str):
    record = _accounts().get(account)
    if record is None:
        raise HTTPException(status_code=404, detail="account not found")
    for method in record["payout_methods"]:
        if method["method_id"] == method_id:
            return {"account": account, **method}
    raise HTTPException(status_code=404, detail="payout method not found")
