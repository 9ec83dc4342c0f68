"""CLI interface for dejumble."""

import time
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table
from tqdm import tqdm

from dejumble import __version__
from dejumble import debug as debugging
from dejumble.config import Config, ParserBackend
from dejumble.core.generator import beautify_code, generate_code, save_output
from dejumble.core.parser import parse_file
from dejumble.debug import close_debug_logger, debug_log, setup_debug_logger
from dejumble.errors import DejumbleError
from dejumble.pipeline import PassContext, build_pipeline
from dejumble.transforms import build_helper_registry, find_unused_bindings, get_all_variable_values

console = Console()

_OUTPUT_SUFFIX = ".deobfuscated.js"


def _default_output_path(file_path: Path, config: Config) -> Path:
    if config.output_dir:
        return config.output_dir / file_path.name
    return file_path.with_suffix(_OUTPUT_SUFFIX)


def process_file(
    file_path: Path,
    config: Config,
    output_path: Optional[Path] = None,
) -> dict:
    """Deobfuscate a single JavaScript file.

    Args:
        file_path: Path to JavaScript file
        config: Configuration
        output_path: Optional output path

    Returns:
        Processing statistics
    """
    debug_log("info", "=" * 80)
    debug_log("info", f"Starting processing file: {file_path}")
    started = time.perf_counter()

    ast = parse_file(file_path, backend=config.parser_backend.value, timeout=config.node_timeout_seconds)
    chain = build_pipeline(config)

    with tqdm(total=len(chain), desc=file_path.name, unit="pass", ncols=100, leave=False) as pbar:
        context = chain.run(
            PassContext(ast=ast, file_path=file_path),
            progress_callback=lambda _: pbar.update(1),
        )

    code = generate_code(context.ast, comments=config.preserve_comments, timeout=config.node_timeout_seconds)
    if config.beautify:
        code = beautify_code(code, indent_size=config.indent_size)

    if output_path is None:
        output_path = _default_output_path(file_path, config)
    save_output(code, output_path)
    debug_log("info", f"Saved output to: {output_path}")

    stats = {
        "file": str(file_path),
        "output": str(output_path),
        "passes": len(chain),
        "input_bytes": file_path.stat().st_size,
        "output_bytes": len(code.encode("utf-8")),
        "seconds": time.perf_counter() - started,
    }
    debug_log("info", "File complete", {**stats, "timings": context.metadata.get("timings")})
    return stats


def iter_js_files(dir_path: Path) -> list[Path]:
    """JavaScript files under dir_path, skipping dependencies, minified and generated files."""
    files = []
    for js_file in sorted(dir_path.rglob("*.js")):
        if "node_modules" in js_file.parts:
            continue
        if ".min." in js_file.name or js_file.name.endswith(_OUTPUT_SUFFIX):
            continue
        files.append(js_file)
    return files


def process_directory(
    dir_path: Path,
    config: Config,
    output_dir: Optional[Path] = None,
) -> list[dict]:
    """Deobfuscate all JavaScript files in a directory.

    Args:
        dir_path: Path to directory
        config: Configuration
        output_dir: Optional output directory, mirroring the input layout

    Returns:
        List of processing statistics for each file
    """
    js_files = iter_js_files(dir_path)
    console.print(f"[blue]Found {len(js_files)} JavaScript files in {dir_path}[/blue]")

    debug_log("info", f"Processing directory: {dir_path}", {
        "js_files_count": len(js_files),
        "js_files": [str(f) for f in js_files[:10]],  # First 10 files
    })

    results = []
    for js_file in tqdm(js_files, desc="Deobfuscating", unit="file", ncols=100):
        rel_path = js_file.relative_to(dir_path)
        out_path = output_dir / rel_path if output_dir else None
        results.append(_process_safely(js_file, config, out_path))
    return results


def _process_safely(file_path: Path, config: Config, output_path: Optional[Path]) -> dict:
    try:
        return process_file(file_path, config, output_path)
    except (DejumbleError, OSError, ValueError) as e:
        console.print(f"[red]Error processing {file_path}: {e}[/red]")
        debug_log("error", f"Failed to process {file_path}", {"error": repr(e)})
        return {"file": str(file_path), "error": str(e)}


@click.group()
@click.version_option(version=__version__)
def main():
    """Dejumble - JavaScript deobfuscation by syntax-tree rewriting."""
    pass


@main.command()
@click.argument("input_path", type=click.Path(exists=True, path_type=Path))
@click.option("-o", "--output", "output_path", type=click.Path(path_type=Path), help="Output file/directory path")
@click.option("--cloudflare", is_flag=True, help="Reverse string mixing and switch flattening")
@click.option("--inline-logical", is_flag=True, help="Expand value-position && into if statements")
@click.option("--no-rename", is_flag=True, help="Keep original variable and parameter names")
@click.option("--names", help="Comma-separated names used before the name pool")
@click.option("--backend", type=click.Choice([b.value for b in ParserBackend]), help="Parser backend")
@click.option("--no-beautify", is_flag=True, help="Skip jsbeautifier formatting")
@click.option("--debug", is_flag=True, help="Enable debug logging to file")
@click.option("--debug-file", type=click.Path(path_type=Path), help="Debug log file path (default: dejumble_debug_TIMESTAMP.log)")
def deobfuscate(
    input_path: Path,
    output_path: Optional[Path],
    cloudflare: bool,
    inline_logical: bool,
    no_rename: bool,
    names: Optional[str],
    backend: Optional[str],
    no_beautify: bool,
    debug: bool,
    debug_file: Optional[Path],
):
    """Deobfuscate JavaScript code.

    INPUT_PATH can be a JavaScript file or directory containing JS files.
    """
    # Setup debug logger if requested
    if debug:
        setup_debug_logger(debug_file)
        console.print(f"[yellow]Debug logging enabled: {debugging.debug_log_file}[/yellow]")
        debug_log("info", "Debug logging started", {
            "input_path": str(input_path),
            "output_path": str(output_path) if output_path else None,
            "cloudflare": cloudflare,
            "inline_logical": inline_logical,
            "rename": not no_rename,
            "backend": backend,
        })

    # Only override .env values if CLI args are explicitly provided
    config_kwargs = {}
    if cloudflare:
        config_kwargs["cloudflare"] = True
    if inline_logical:
        config_kwargs["inline_logical"] = True
    if no_rename:
        config_kwargs["rename_identifiers"] = False
        config_kwargs["rename_arguments"] = False
    if names:
        config_kwargs["custom_names"] = names
    if backend:
        config_kwargs["parser_backend"] = ParserBackend(backend)
    if no_beautify:
        config_kwargs["beautify"] = False

    config = Config(**config_kwargs)
    debug_log("info", "Configuration loaded", config.model_dump(mode="json"))

    try:
        if input_path.is_file():
            results = [_process_safely(input_path, config, output_path)]
        else:
            results = process_directory(input_path, config, output_path or config.output_dir)

        # Print summary
        table = Table(title="Processing Summary")
        table.add_column("File")
        table.add_column("Passes")
        table.add_column("Size")
        table.add_column("Time")
        table.add_column("Status")

        for r in results:
            failed = "error" in r
            table.add_row(
                r.get("file", "unknown"),
                str(r.get("passes", 0)),
                "-" if failed else f"{r['input_bytes']} -> {r['output_bytes']}",
                "-" if failed else f"{r['seconds']:.2f}s",
                "✗" if failed else "✓",
            )

        console.print(table)
        debug_log("info", "Processing complete", {"results": results})

        if debug:
            console.print(f"\n[yellow]Debug log saved to: {debugging.debug_log_file}[/yellow]")
    finally:
        close_debug_logger()

    if any("error" in r for r in results):
        raise SystemExit(1)


@main.command()
@click.option("--cloudflare", is_flag=True, help="Include the control-flow passes")
@click.option("--inline-logical", is_flag=True, help="Include && expansion")
@click.option("--no-rename", is_flag=True, help="Leave out the renaming passes")
def passes(cloudflare: bool, inline_logical: bool, no_rename: bool):
    """Show the passes that would run, in order."""
    config_kwargs = {}
    if cloudflare:
        config_kwargs["cloudflare"] = True
    if inline_logical:
        config_kwargs["inline_logical"] = True
    if no_rename:
        config_kwargs["rename_identifiers"] = False
        config_kwargs["rename_arguments"] = False
    chain = build_pipeline(Config(**config_kwargs))

    table = Table(title="Pipeline")
    table.add_column("Priority", justify="right")
    table.add_column("Pass")
    table.add_column("Description")
    for pass_ in chain:
        table.add_row(str(pass_.priority), pass_.name, pass_.description)
    console.print(table)


@main.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--backend", type=click.Choice([b.value for b in ParserBackend]), help="Parser backend")
def analyze(input_path: Path, backend: Optional[str]):
    """Report flattening tables, helper functions and unused declarations without rewriting."""
    config = Config(**({"parser_backend": ParserBackend(backend)} if backend else {}))
    try:
        ast = parse_file(input_path, backend=config.parser_backend.value, timeout=config.node_timeout_seconds)
    except (DejumbleError, OSError) as e:
        console.print(f"[red]Error parsing {input_path}: {e}[/red]")
        raise SystemExit(1)

    console.print(f"[blue]File:[/blue] {input_path}")

    orders = get_all_variable_values(ast, max_depth=config.max_chain_depth)
    console.print(f"[blue]Order strings:[/blue] {len(orders)}")
    for (prefix, name), order in sorted(orders.items()):
        console.print(f"  - {name} [dim]({prefix})[/dim]: {order}")

    helpers = build_helper_registry(ast, max_depth=config.max_chain_depth)
    console.print(f"[blue]Helper functions:[/blue] {len(helpers)}")
    for helper in helpers.values():
        shape = helper.operator or ("forwards call" if helper.forwards_callee else "call")
        console.print(f"  - {helper.name}/{helper.arity} ({helper.kind}, {shape})")

    unused = find_unused_bindings(ast)
    console.print(f"[blue]Unused declarations:[/blue] {len(unused)}")
    for binding in unused:
        console.print(f"  - {binding.name} ({binding.kind})")


if __name__ == "__main__":
    main()
