"""Splitter E2E Test Client.

One-shot client that requests the payment-gated resource, pays the split
challenge on Solana and outputs a structured JSON result for the e2e test
framework to parse.
"""

import asyncio
import json
import os
import sys

from dotenv import load_dotenv

load_dotenv()

server_url = os.getenv("RESOURCE_SERVER_URL", "")
endpoint_path = os.getenv("ENDPOINT_PATH", "/api/demo/get-data")
splitter_id = os.getenv("SPLITTER_ID", "")
svm_private_key = os.getenv("SVM_PRIVATE_KEY", "")
rpc_url = os.getenv("SOLANA_RPC_URL", "https://api.devnet.solana.com")

if not server_url or not splitter_id or not svm_private_key:
    result = {
        "success": False,
        "error": "Missing required environment variables: RESOURCE_SERVER_URL, SPLITTER_ID, SVM_PRIVATE_KEY",
    }
    print(json.dumps(result))
    sys.exit(1)


async def main() -> dict:
    """Request the resource, paying if challenged. Returns the e2e result dict."""
    import httpx

    from x402_splitter.errors import SplitterError
    from x402_splitter.mechanisms.svm import KeypairSigner, SolanaRpcLedger
    from x402_splitter.mechanisms.svm.splitter.client import SplitPaymentClient

    signer = KeypairSigner.from_base58(svm_private_key)
    ledger = SolanaRpcLedger(rpc_url)

    try:
        async with httpx.AsyncClient(base_url=server_url, timeout=60.0) as http:
            client = SplitPaymentClient(http, signer, ledger)
            result = await client.request(endpoint_path, splitter_id)

        payment_response = None
        if result.payment_made:
            payment_response = {
                "signature": result.signature,
                "payer": signer.address,
                "splits": {
                    "merchant": result.splits.merchant,
                    "agent": result.splits.agent,
                    "platform": result.splits.platform,
                    "residual": result.splits.residual,
                },
            }

        return {
            "success": result.status_code == 200,
            "data": result.body,
            "status_code": result.status_code,
            "payment_response": payment_response,
        }

    except (SplitterError, httpx.HTTPError) as e:
        return {
            "success": False,
            "error": str(e),
            "status_code": getattr(e, "status_code", 500),
        }
    finally:
        await ledger.close()


if __name__ == "__main__":
    e2e_result = asyncio.run(main())
    print(json.dumps(e2e_result))
    sys.exit(0 if e2e_result.get("success") else 1)
