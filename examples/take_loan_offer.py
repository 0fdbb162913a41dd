"""Borrow Against an NFT Example.

This example demonstrates taking a signed Kettle loan offer with a local
private key. The client validates the offer against live chain state, then
returns an ordered list of steps:
- A collection approval for the settlement contract, if missing
- The borrow transaction itself

Prerequisites:
1. pip install kettle-sdk[examples]
2. Set environment variables (KETTLE_RPC_URL, KETTLE_CONTRACT_ADDRESS,
   PRIVATE_KEY, OFFER_FILE)
3. Hold the NFT the offer is made against

Usage:
    python take_loan_offer.py
"""

import asyncio
import json
import os
from dotenv import load_dotenv

load_dotenv()


async def main():
    from kettle_sdk import (
        KettleClient,
        LocalAccountSigner,
        OfferValidationError,
        OfferWithSignature,
        RpcClient,
        config_from_env,
    )
    from kettle_sdk.offers import format_units

    required = ["KETTLE_RPC_URL", "KETTLE_CONTRACT_ADDRESS", "PRIVATE_KEY", "OFFER_FILE"]
    missing = [var for var in required if not os.environ.get(var)]
    if missing:
        print(f"Missing required environment variables: {', '.join(missing)}")
        return

    config = config_from_env()

    with open(os.environ["OFFER_FILE"]) as f:
        signed = OfferWithSignature.from_dict(json.load(f))

    print("=" * 60)
    print("  KETTLE: TAKE LOAN OFFER")
    print("=" * 60)

    async with RpcClient(config["rpc_url"]) as rpc:
        signer = LocalAccountSigner(os.environ["PRIVATE_KEY"], rpc)
        kettle = KettleClient(rpc, config, signer)

        offer = signed.offer
        print(f"\nBorrower:   {signer.address}")
        print(f"Collection: {offer.collateral.collection}")
        print(f"Token ID:   {offer.collateral.identifier}")
        print(f"Amount:     {format_units(offer.terms.max_amount)}")

        try:
            steps = await kettle.take_loan_offer(offer, signed.signature)
        except OfferValidationError as e:
            print(f"\nCannot take offer: {e.reason}")
            return

        for step in steps:
            tx_hash = await step.execute()
            print(f"  {step.type.value}: {tx_hash}")

    print("\nDone.")


if __name__ == "__main__":
    asyncio.run(main())
