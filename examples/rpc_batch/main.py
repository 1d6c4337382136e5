#!/usr/bin/env python3
"""
RPC Batch

Queries an Ethereum JSON-RPC endpoint for a handful of account balances,
then signs a digest of each answer with a local key.

APIs used:
- Any Ethereum JSON-RPC endpoint (default: https://cloudflare-eth.com)

Demonstrates:
- RequestQueue bounding in-flight RPC calls and retrying transient failures
- TaskScheduler bounding local CPU work (HMAC signing)
- Handling ExhaustedRetriesError per request without stopping the batch
"""

import asyncio
import hashlib
import hmac
import json
import os
import sys

import httpx

import workcue

RPC_URL = os.environ.get("RPC_URL", "https://cloudflare-eth.com")
SIGNING_KEY = os.environ.get("SIGNING_KEY", "demo-key").encode()

ADDRESSES = [
    "0x00000000219ab540356cBB839Cbe05303d7705Fa",
    "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
    "0xBE0eB53F46cd790Cd13851d5EFf43D12404d33E8",
    "0x40B38765696e3d5d8d9d834D8AaD4bB6e418E489",
    "0xDA9dfA130Df4dE4673b89022EE50ff26f6EA73Cf",
]


async def main():
    queue = workcue.RequestQueue(max_concurrent=2, retry_attempts=4, retry_delay=0.5, backoff_factor=2.0)
    signer = workcue.TaskScheduler(max_workers=2)

    @queue.on_retry
    def on_retry(item, error, delay):
        print(f"  [{item.data['address'][:10]}] attempt {item.attempt} failed ({error}); retrying in {delay:.1f}s", flush=True)

    async with httpx.AsyncClient(timeout=15) as client:

        async def get_balance(params):
            """Fetch an account balance in wei."""
            resp = await client.post(RPC_URL, json={
                "jsonrpc": "2.0",
                "id": params["id"],
                "method": "eth_getBalance",
                "params": [params["address"], "latest"],
            })
            resp.raise_for_status()
            body = resp.json()
            if "error" in body:
                raise RuntimeError(body["error"].get("message", "RPC error"))
            return {"address": params["address"], "wei": int(body["result"], 16)}

        def sign(record):
            """HMAC the canonical JSON form of a balance record."""
            payload = json.dumps(record, sort_keys=True).encode()
            return {**record, "signature": hmac.new(SIGNING_KEY, payload, hashlib.sha256).hexdigest()}

        async def process(i, address):
            balance = await queue.add_request(get_balance, {"id": i, "address": address})
            return await signer.add_task(sign, balance)

        print(f"Querying {len(ADDRESSES)} balances from {RPC_URL}...", flush=True)
        results = await asyncio.gather(
            *(process(i, address) for i, address in enumerate(ADDRESSES)),
            return_exceptions=True,
        )

    failures = 0
    for address, result in zip(ADDRESSES, results):
        if isinstance(result, workcue.ExhaustedRetriesError):
            failures += 1
            print(f"  ✗ {address}: gave up after {result.attempts} attempts ({result.last_error})")
        elif isinstance(result, Exception):
            failures += 1
            print(f"  ✗ {address}: {result}")
        else:
            eth = result["wei"] / 10**18
            print(f"  ✓ {address}: {eth:,.4f} ETH  sig={result['signature'][:16]}…")

    stats = queue.stats()
    print(f"\nRequests: {stats.succeeded} ok, {stats.failed} failed, {stats.retries} retries")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
