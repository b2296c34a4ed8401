from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence

# 直接スクリプトとして実行された場合でも proofread パッケージを解決できるようにする
if __package__ in {None, ""}:  # python proofread/cmd/cli.py 等の実行形態に対応
    project_root = Path(__file__).resolve().parents[2]
    if str(project_root) not in sys.path:
        sys.path.append(str(project_root))

from proofread.config.defaults import DEFAULT_CLIENT_MAX_RETRIES
from proofread.config.logging import setup_logging
from proofread.config.settings import AppSettings
from proofread.lib.check import CheckOutcome, CheckService
from proofread.lib.llm import OpenAICompatibleClient
from proofread.lib.roles import PipelineExecutor, RoleRegistry, parse_pipeline_spec, register_builtin_roles
from proofread.lib.sse import CheckAccumulator, CheckStatus, ClientConfig, sse_check

logger = logging.getLogger(__name__)

REMOTE_DEFAULT_URL = "http://127.0.0.1:8000/api/check"


@dataclass(frozen=True)
class RemoteCheckResult:
    status: CheckStatus
    accumulator: CheckAccumulator


CommandResult = CheckOutcome | RemoteCheckResult
CommandHandler = Callable[[argparse.Namespace], CommandResult]


@dataclass(frozen=True)
class SubcommandSpec:
    name: str
    help: str
    configure: Callable[[argparse.ArgumentParser], None]
    handler: CommandHandler
    description: str | None = None


def _build_shared_parent_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("text", help="校正対象の本文 (- を指定すると標準入力から読む)")
    parser.add_argument(
        "--pipeline",
        default=None,
        help="パイプライン指定 (例: basic*2,reviewer)。未指定時は WORKFLOW_PIPELINE",
    )
    parser.add_argument(
        "--types",
        default=None,
        help="出力する誤り種別 (カンマ区切り: spelling,punctuation,grammar,fluency)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="ログレベル (DEBUG/INFO/WARNING/ERROR)",
    )
    return parser


def _configure_remote_parser(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--url", default=REMOTE_DEFAULT_URL, help="校正 API の URL")
    parser.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help=f"最大試行回数 (既定 {DEFAULT_CLIENT_MAX_RETRIES})",
    )
    parser.add_argument("--idle-ms", type=int, default=None, help="無通信とみなすまでのミリ秒")
    parser.add_argument("--total-timeout-ms", type=int, default=None, help="全体の期限 (ミリ秒)")


def _read_text(args: argparse.Namespace) -> str:
    if args.text == "-":
        return sys.stdin.read()
    return args.text


def _split_types(raw: str | None) -> list[str] | None:
    if not raw:
        return None
    values = [part.strip() for part in raw.split(",") if part.strip()]
    return values or None


async def _run_local_check(args: argparse.Namespace) -> CheckOutcome:
    settings = AppSettings.from_env()
    client = OpenAICompatibleClient(settings.llm)
    try:
        registry = RoleRegistry()
        register_builtin_roles(registry, client, basic_config=settings.basic, fluent_config=settings.fluent)
        service = CheckService(PipelineExecutor(registry), settings)
        pipeline = parse_pipeline_spec(args.pipeline) if args.pipeline else None
        return await service.check(
            _read_text(args),
            pipeline=pipeline,
            enabled_types=_split_types(args.types),
        )
    finally:
        await client.aclose()


async def _run_remote_check(args: argparse.Namespace) -> RemoteCheckResult:
    text = _read_text(args)
    options: dict[str, Any] = {}
    if args.pipeline:
        options["pipeline"] = [entry.as_dict() for entry in parse_pipeline_spec(args.pipeline)]
    types = _split_types(args.types)
    if types:
        options["enabledTypes"] = types

    accumulator = CheckAccumulator(text)
    status = await sse_check(
        text,
        options,
        callbacks=accumulator.callbacks(),
        max_retries=args.max_retries,
        idle_ms=args.idle_ms,
        total_timeout_ms=args.total_timeout_ms,
        url=args.url,
        config=ClientConfig.from_env(),
    )
    return RemoteCheckResult(status=status, accumulator=accumulator)


def _handle_check_command(args: argparse.Namespace) -> CommandResult:
    return asyncio.run(_run_local_check(args))


def _handle_remote_command(args: argparse.Namespace) -> CommandResult:
    return asyncio.run(_run_remote_check(args))


_SUBCOMMAND_SPECS: tuple[SubcommandSpec, ...] = (
    SubcommandSpec(
        name="check",
        help="パイプラインをこのプロセス内で実行する",
        configure=lambda parser: None,
        handler=_handle_check_command,
    ),
    SubcommandSpec(
        name="remote",
        help="校正 API を SSE で呼び出す (再試行あり)",
        configure=_configure_remote_parser,
        handler=_handle_remote_command,
    ),
)

_SUBCOMMAND_MAP: dict[str, SubcommandSpec] = {spec.name: spec for spec in _SUBCOMMAND_SPECS}


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """CLI引数を定義して解析する。"""

    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(description="中文文本校对 CLI")
    subparsers = parser.add_subparsers(dest="command")
    shared_parent = _build_shared_parent_parser()

    for spec in _SUBCOMMAND_SPECS:
        subparser = subparsers.add_parser(
            spec.name,
            parents=[shared_parent],
            help=spec.help,
            description=spec.description or spec.help,
        )
        spec.configure(subparser)

    subparsers.required = False
    parser.set_defaults(command="check")

    if argv and argv[0] not in _SUBCOMMAND_MAP and argv[0] not in {"-h", "--help"}:
        argv = ["check", *argv]

    return parser.parse_args(argv)


def run_cli(args: argparse.Namespace) -> CommandResult:
    """コマンド引数を受け取り、校正処理を実行する。"""

    setup_logging(args.log_level)

    command = args.command or "check"
    spec = _SUBCOMMAND_MAP.get(command)
    if spec is None:
        raise RuntimeError(f"未対応のコマンドです: {command}")
    return spec.handler(args)


def _dump(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def main(argv: Sequence[str] | None = None) -> None:
    """エントリーポイント。結果を JSON で標準出力へ流す。"""

    args = parse_args(argv)

    try:
        result = run_cli(args)
    except Exception as exc:  # noqa: BLE001 - CLIからはエラーをそのまま通知する
        raise SystemExit(f"校正に失敗しました: {exc}") from exc

    if isinstance(result, RemoteCheckResult):
        acc = result.accumulator
        _dump(
            {
                "status": result.status.value,
                "errors": [item.to_dict() for item in acc.errors],
                "meta": acc.meta,
                "warnings": acc.warnings,
                "messages": acc.messages,
                "retries": len(acc.retries),
            }
        )
        if result.status is not CheckStatus.SUCCESS:
            raise SystemExit(1)
        return

    _dump({"errors": result.errors, "meta": result.meta, "patchedText": result.patched_text})


if __name__ == "__main__":
    main()
