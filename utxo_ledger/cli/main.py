"""
UTXO Ledger CLI - Command Line Interface for the UTXO ledger

Main entry point for all CLI commands.
"""

import json
from pathlib import Path

import click

from utxo_ledger.utils.logger import setup_logging, get_logger


def _load_block(entries):
    from utxo_ledger.core.state import Transaction

    txs = []
    for entry in entries:
        if isinstance(entry, str):
            txs.append(Transaction.from_hex(entry))
        else:
            txs.append(Transaction.from_dict(entry))
    return txs


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug):
    """UTXO ledger - runtime module tooling"""
    import logging

    level = logging.DEBUG if debug else logging.INFO
    setup_logging(level=level)

    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


# =============================================================================
# Keys and Transactions
# =============================================================================


@cli.command("keygen")
@click.option("--seed", default=None, help="32-byte hex seed (random if omitted)")
def keygen(seed):
    """Generate an sr25519 keypair"""
    from utxo_ledger.crypto import generate_keypair, keypair_from_seed, hex_to_bytes, bytes_to_hex

    kp = keypair_from_seed(hex_to_bytes(seed)) if seed else generate_keypair()

    click.echo(f"Seed:       {bytes_to_hex(kp.seed)}")
    click.echo(f"Public key: {bytes_to_hex(kp.public_key)}")


@cli.command("transfer")
@click.option("--seed", required=True, help="Hex seed of the key owning every input")
@click.option("--input", "inputs", multiple=True, required=True, help="Outpoint to spend (hex)")
@click.option("--output", "outputs", multiple=True, required=True, help="PUBKEY:VALUE")
def transfer(seed, inputs, outputs):
    """Build and sign a transaction, print its wire encoding"""
    from utxo_ledger.core.state import create_transfer
    from utxo_ledger.crypto import keypair_from_seed, hex_to_bytes

    kp = keypair_from_seed(hex_to_bytes(seed))

    recipients = []
    for entry in outputs:
        pubkey, sep, value = entry.rpartition(":")
        if not sep:
            raise click.BadParameter(f"expected PUBKEY:VALUE, got {entry}", param_hint="--output")
        recipients.append((hex_to_bytes(pubkey), int(value)))

    tx = create_transfer([(hex_to_bytes(o), kp) for o in inputs], recipients)
    click.echo(tx.to_hex())


@cli.command("decode")
@click.argument("tx_hex")
def decode(tx_hex):
    """Decode a wire transaction to JSON"""
    from utxo_ledger.core.codec import CodecError
    from utxo_ledger.core.state import Transaction
    from utxo_ledger.crypto import bytes_to_hex

    try:
        tx = Transaction.from_hex(tx_hex)
    except (CodecError, ValueError) as e:
        raise click.ClickException(f"Cannot decode transaction: {e}")

    data = tx.to_dict()
    data["tx_hash"] = bytes_to_hex(tx.tx_hash)
    data["output_keys"] = [bytes_to_hex(k) for k in tx.output_keys()]
    click.echo(json.dumps(data, indent=2))


# =============================================================================
# Chain Commands
# =============================================================================


@cli.command("genesis")
@click.argument("config_path", type=click.Path(exists=True, dir_okay=False))
def genesis(config_path):
    """List the genesis outpoints of a config"""
    from utxo_ledger.core.config import load_config
    from utxo_ledger.crypto import bytes_to_hex

    config = load_config(config_path)
    outputs = config.genesis_outputs()

    click.echo(f"Genesis: {len(outputs)} outputs, {sum(o.value for o in outputs)} total")
    for out in outputs:
        click.echo(f"  {bytes_to_hex(out.genesis_key())}  value={out.value}  owner={bytes_to_hex(out.pubkey)}")


@cli.command("replay")
@click.argument("config_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("blocks_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--data-dir", default=None, help="Persist state in DATA_DIR/ledger.db")
@click.pass_context
def replay(ctx, config_path, blocks_path, data_dir):
    """Execute a JSON list of blocks against the genesis in CONFIG_PATH"""
    from utxo_ledger.core.config import load_config
    from utxo_ledger.core.runtime import LocalRuntime
    from utxo_ledger.core.storage import SQLiteState

    logger = get_logger("cli")
    config = load_config(config_path)
    if not ctx.obj.get("debug"):
        setup_logging(level=config.log_level, log_dir=config.log_dir, log_to_file=config.log_dir is not None)

    data_dir = data_dir or config.data_dir
    state = None
    if data_dir:
        state = SQLiteState(Path(data_dir).expanduser() / "ledger.db")

    runtime = LocalRuntime.from_config(config, state=state)
    blocks = json.loads(Path(blocks_path).read_text(encoding="utf-8"))
    logger.debug(f"Replaying {len(blocks)} blocks from {blocks_path}")

    for entries in blocks:
        receipt = runtime.execute_block(_load_block(entries))
        click.echo(f"Block {receipt.number}: {receipt.applied} applied, {receipt.rejected} rejected")
        for result in receipt.results:
            if not result.success:
                click.echo(f"  ✗ {result.to_dict()['tx_hash'][:18]}... {result.error.kind.name}: {result.error}")
        for event in receipt.events:
            click.echo(f"  {json.dumps(event.to_dict())}")

    click.echo(json.dumps(runtime.stats(), indent=2))

    if state is not None:
        state.close()


if __name__ == "__main__":
    cli()
