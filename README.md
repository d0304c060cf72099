# conduitnode

Building blocks for a Conduit content node that do not depend on a
Lightning wallet:

- **Command line** (`conduitnode.cli`): `build_parser()` and
  `parse_args(argv)` describe the node's global options (`--storage-dir`,
  `--port`, `--http-port`, `--registry-url`, `--p2p` and others) and its
  subcommands `address`, `info`, `open-channel`, `channels`, `register`,
  `sell`, `serve`, `seed`, `buy` and `buy-pre`. Ports are checked to fit in
  16 bits and amounts in 64 bits; invalid input exits with status 2.
- **Attestation tokens** (`conduitnode.attestation`): the `Campaign` and
  `AttestationPayload` records, the advertiser SQLite schema (`init_db`),
  `load_campaigns`, `infer_format` for creative URLs, and Ed25519 signing
  over a compact canonical JSON payload (`canonical_json`,
  `sign_attestation`, `verify_attestation`, `load_or_create_signing_key`).
- **Advertiser role** (`conduitnode.advertiser`): `AdvertiserService`
  stores campaigns, runs viewing sessions, issues attestation tokens and
  makes budget-checked subsidy payments. Rejections are raised as
  `AdvertiserError` carrying an HTTP `status` and a JSON `body`.
- **Device attestation** (`conduitnode.tee`): a JSON-persisted `TrustList`
  of manufacturer P-256 keys, certificate checks with `attest_device` and
  challenge checks with `verify_challenge_response`. Rejections are raised
  as `AttestationError` with an HTTP `status`.
- **Chunks** (`conduitnode.chunks`): seek-based `read_single_chunk`,
  `chunk_bitfield`, `chunk_meta` and `read_wrapped_chunk`.
- **Files** (`conduitnode.files`): `content_type_for`, `decrypted_file`,
  `validate_chunk_request`, `ad_creative_url` and `file_name_of`.

## Requirements

Python 3.10 or later, with `cryptography`.

## Command-line options

```python
from conduitnode.cli import parse_args

args = parse_args(["--http-port", "3000", "register", "--file", "song.mp3", "--price", "100"])
print(args.command, args.file, args.price, args.storage_dir)
```

## Advertiser campaigns

```python
import sqlite3
from conduitnode.attestation import load_or_create_signing_key
from conduitnode.advertiser import AdvertiserError, AdvertiserService

conn = sqlite3.connect("advertiser.db")
service = AdvertiserService(conn, load_or_create_signing_key("/var/lib/conduit-node"))

created = service.create_campaign({"name": "Spring", "creative_url": "https://cdn.example.com/ad.mp4"})
print(service.list_campaigns())

session = service.start_session(created["campaign_id"], buyer_pubkey)
try:
    attestation = service.complete_session(created["campaign_id"], session["session_id"], buyer_pubkey)
except AdvertiserError as exc:
    print(exc.status, exc.body)   # 412 until the viewing time has passed
```

`AdvertiserService` creates its tables on construction. Campaigns default
to a 15 second view, a 50 sat subsidy and a budget of 1,000,000 sats. A
buyer may have at most five open sessions per campaign within five minutes.

`pay_invoice(bolt11_invoice, attestation_token, payload, pay)` verifies the
token, reserves the subsidy from the budget and calls `pay(bolt11_invoice)`,
which must send the payment and return its payment hash as hex. A
`ValueError` from `pay` is reported as an invalid invoice; any other
exception returns the reserved subsidy to the budget.

## Device trust list

```python
from conduitnode.tee import AttestationError, TrustList, attest_device

trust = TrustList("/var/lib/conduit-node/trust_list.json")
trust.add(manufacturer_pk_hex, "Example Devices")

try:
    challenge = attest_device(trust, dev_pk_hex, device_pk_g2_hex, manufacturer_pk_hex,
                              model, firmware_hash, manufacturer_sig_hex)
except AttestationError as exc:
    print(exc.status, exc.to_dict())
```

The manufacturer signs SHA-256 of the device key, the G2 key, the model and
the firmware hash (DER-encoded ECDSA). The device answers the returned
`nonce_hex` by signing SHA-256 of the nonce; `verify_challenge_response`
checks that signature.

## Chunks and files

```python
from conduitnode.chunks import chunk_bitfield, read_single_chunk
from conduitnode.files import validate_chunk_request

data, total = read_single_chunk("movie.enc", 65536, 3)
chunk_bitfield(4, [0, 2])               # an empty list means every chunk is held
validate_chunk_request([0, 2], 4, [0, 2])
```

`decrypted_file(storage_dir, filename)` reads from the storage directory,
or from `/tmp` when the file is not there, and returns the bytes with a
content type chosen by extension.

## What this package does not do

It runs no HTTP server and no node: there is no command to start, no live
console page, no event log or server-sent event stream, and no registry
queries for finding sources. The functions here return dictionaries and
raise exceptions carrying HTTP statuses, ready to be wired into a server of
your choice. Lightning payments are left to the `pay` callable you supply.

## Running the tests

Install the `test` extra and run pytest from the project root.