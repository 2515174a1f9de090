"""CLI for piivault field encryption and log hygiene."""
import asyncio
import json
import sys
from typing import Optional

import click

from piivault.dependencies import build_field_encryptor, build_integrity_keyring, build_key_service_client, build_search_hasher
from piivault.domain.crypto.envelope import CiphertextEnvelope
from piivault.domain.privacy.masking import mask_email, mask_name, mask_phone
from piivault.domain.privacy.redaction import redact
from piivault.errors import PIIVaultError
from piivault.settings import settings

MASKERS = {
    "name": mask_name,
    "phone": mask_phone,
    "email": mask_email,
}


@click.group()
def cli():
    """piivault field encryption CLI."""
    pass


@cli.command("hash")
@click.argument("value")
def hash_value(value: str):
    """Print the search hash for VALUE."""
    try:
        click.echo(build_search_hasher(settings).hash(value))
    except PIIVaultError as e:
        raise click.ClickException(str(e))


@cli.command("mask")
@click.argument("kind", type=click.Choice(sorted(MASKERS)))
@click.argument("value")
def mask_value(kind: str, value: str):
    """Mask VALUE for display."""
    click.echo(MASKERS[kind](value))


@cli.command("redact")
@click.argument("text", required=False)
def redact_text(text: Optional[str]):
    """Redact PII from TEXT, or from stdin line by line."""
    if text is not None:
        click.echo(redact(text))
        return
    for line in sys.stdin:
        click.echo(redact(line.rstrip("\n")))


@cli.command("inspect")
@click.argument("envelope")
def inspect_envelope(envelope: str):
    """Parse ENVELOPE and verify its integrity tag locally."""
    try:
        parsed = CiphertextEnvelope.parse(envelope)
        keyring = build_integrity_keyring(settings)
    except PIIVaultError as e:
        raise click.ClickException(str(e))

    verified = None
    if parsed.is_tagged:
        verified = keyring.verify(parsed.remote_ciphertext, parsed.tag)

    click.echo(json.dumps({
        "ciphertext": parsed.remote_ciphertext,
        "tagged": parsed.is_tagged,
        "tag_verified": verified,
        "key_names": keyring.key_names,
    }, indent=2))
    if verified is False:
        sys.exit(1)


async def _run_encryptor(operation: str, value: str, context: str) -> str:
    client = build_key_service_client(settings)
    try:
        encryptor = build_field_encryptor(settings, client=client)
        if operation == "encrypt":
            return await encryptor.encrypt_with_context(value, context, timeout=settings.VAULT_TIMEOUT_SECONDS)
        return await encryptor.decrypt_with_context(value, context, timeout=settings.VAULT_TIMEOUT_SECONDS)
    finally:
        await client.aclose()


@cli.command("encrypt")
@click.argument("value")
@click.option("--context", default="", help="Encryption context, e.g. user:email")
def encrypt_value(value: str, context: str):
    """Encrypt VALUE and print the stored envelope."""
    try:
        click.echo(asyncio.run(_run_encryptor("encrypt", value, context)))
    except PIIVaultError as e:
        raise click.ClickException(f"{e.code}: {e}")


@cli.command("decrypt")
@click.argument("envelope")
@click.option("--context", default="", help="Context used at encryption time")
def decrypt_value(envelope: str, context: str):
    """Decrypt ENVELOPE and print the plaintext."""
    try:
        click.echo(asyncio.run(_run_encryptor("decrypt", envelope, context)))
    except PIIVaultError as e:
        raise click.ClickException(f"{e.code}: {e}")


if __name__ == "__main__":
    cli()
