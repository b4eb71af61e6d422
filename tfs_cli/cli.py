"""CLI para work items do TFS / Azure DevOps Server.

Usage:
    tfs wiql "<WIQL>" [--top N]                            # Executa WIQL e lista os itens
    tfs search "<texto>" [--top N]                         # Busca em título/descrição
    tfs my [--type T] [--exclude-state S] [--all-states]   # Meus itens no projeto
    tfs view <id> [--fields f1,f2] [--expand relations]    # Mostra um work item
    tfs show <id> [--children-rel REL] [--max-children N]  # Detalhe + filhos
    tfs update <id> --set "Campo=Valor" [--add-comment T]  # Atualiza campos/comentário
    tfs create --type T --title "Título" [--parent ID]     # Cria work item
    tfs types                                              # Tipos de work item do projeto
    tfs whoami                                             # Identidade do dono do PAT
    tfs config view | tfs config set --base-url URL        # Arquivo de configuração
"""
import functools
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, NoReturn, Optional

import click
from click.core import ParameterSource
from pydantic import ValidationError

from tfs_cli import __version__
from tfs_cli.config import (
    ClientConfig,
    Settings,
    load_file_config,
    merge_config,
    normalize_base_url,
    save_file_config,
)
from tfs_cli.errors import (
    CancelledError,
    ConfigInvalidError,
    ConfigMissingError,
    ConfirmationRequiredError,
    InvalidArgsError,
    TfsError,
    UnknownCommandError,
)
from tfs_cli.models.devops_models import CHILD_RELATION, LIST_FIELDS, PARENT_RELATION, SHOW_FIELDS, WorkItem
from tfs_cli.output import (
    normalize_work_item,
    raw_work_item,
    render_error,
    to_json,
    types_payload,
    types_table,
    work_item_details_text,
    work_item_text,
    work_items_table,
)
from tfs_cli.services.batch_fetcher import BatchFetcher
from tfs_cli.services.devops_client import AzureDevOpsClient
from tfs_cli.services.identity_resolver import IdentityResolver
from tfs_cli.services.transport import CancelToken
from tfs_cli.utils.patch_builder import build_create_patch, build_update_patch
from tfs_cli.utils.wiql import my_items_query, search_query

logger = logging.getLogger(__name__)

# Acima disso, update exige --yes
BULK_UPDATE_LIMIT = 5

EXPAND_VALUES = {"none": "None", "relations": "Relations", "all": "All"}


def load_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigInvalidError("invalid environment configuration", details=e.errors(include_url=False)) from e


@dataclass(frozen=True)
class GlobalOptions:
    base_url: Optional[str]
    project: Optional[str]
    pat: Optional[str]
    as_json: bool
    json_explicit: bool
    verbose: bool
    insecure: bool


@dataclass(frozen=True)
class CommandContext:
    config: ClientConfig
    settings: Settings
    json_mode: bool

    @property
    def project(self) -> str:
        return self.config.project

    def require_project(self) -> None:
        if not self.project:
            raise ConfigMissingError("project is required")


def build_context(opts: GlobalOptions) -> CommandContext:
    """Config efetiva: arquivo < ambiente < flags; URL base normalizada quando termina com o projeto."""
    settings = load_settings()
    cfg = merge_config(load_file_config(), settings.to_client_config())
    overrides = {
        name: value
        for name, value in (("base_url", opts.base_url), ("project", opts.project), ("pat", opts.pat))
        if value is not None
    }
    if overrides:
        cfg = cfg.model_copy(update=overrides)
    base_url, changed = normalize_base_url(cfg.base_url, cfg.project)
    if changed:
        logger.debug("URL base normalizada: %s -> %s", cfg.base_url, base_url)
    cfg = cfg.model_copy(
        update={
            "base_url": base_url,
            "insecure": opts.insecure,
            "timeout_seconds": settings.TFS_TIMEOUT_SECONDS,
            "log_sink": sys.stderr if opts.verbose else None,
        }
    )
    return CommandContext(config=cfg, settings=settings, json_mode=opts.as_json)


def _fail(err: BaseException, json_mode: bool) -> NoReturn:
    click.echo(render_error(err, json_mode), err=True)
    sys.exit(1)


def _emit(ctx: CommandContext, payload: Any, text: Callable[[], str]) -> None:
    click.echo(to_json(payload) if ctx.json_mode else text())


_GLOBAL_OPTIONS = (
    click.option("--base-url", default=None, help="URL base (sobrepõe config/env)"),
    click.option("--project", default=None, help="Projeto (sobrepõe config/env)"),
    click.option("--pat", default=None, help="PAT (sobrepõe config/env)"),
    click.option("--json/--no-json", "as_json", default=True, help="Saída JSON (--no-json para texto)"),
    click.option("--verbose", is_flag=True, help="Log HTTP detalhado em stderr (sem tokens)"),
    click.option("--insecure", is_flag=True, help="Não verifica o certificado TLS"),
)


def global_options(f: Callable[..., Any]) -> Callable[..., Any]:
    """Adiciona as opções globais ao comando e converte TfsError em saída de erro + exit 1."""

    @functools.wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        source = click.get_current_context().get_parameter_source("as_json")
        opts = GlobalOptions(
            base_url=kwargs.pop("base_url"),
            project=kwargs.pop("project"),
            pat=kwargs.pop("pat"),
            as_json=kwargs.pop("as_json"),
            json_explicit=source == ParameterSource.COMMANDLINE,
            verbose=kwargs.pop("verbose"),
            insecure=kwargs.pop("insecure"),
        )
        try:
            return f(*args, opts=opts, **kwargs)
        except TfsError as e:
            _fail(e, opts.as_json)
        except Exception as e:
            logger.debug("Erro inesperado", exc_info=True)
            _fail(e, opts.as_json)

    for option in reversed(_GLOBAL_OPTIONS):
        wrapper = option(wrapper)
    return wrapper


def _fetch_list(client: AzureDevOpsClient, ids: list[int], cancel: CancelToken) -> list[dict[str, Any]]:
    items = BatchFetcher(client).fetch(ids, LIST_FIELDS, cancel=cancel)
    return [normalize_work_item(wi) for wi in items]


def _render_list(ctx: CommandContext, items: list[dict[str, Any]]) -> None:
    _emit(ctx, items, lambda: work_items_table(items))


def _render_work_item(ctx: CommandContext, wi: WorkItem) -> None:
    normalized = normalize_work_item(wi)
    _emit(ctx, {"workItem": normalized, "raw": raw_work_item(wi)}, lambda: work_item_text(normalized))


def _run_query(opts: GlobalOptions, query: str, top: int, json_mode: Optional[bool] = None) -> None:
    ctx = build_context(opts)
    if json_mode is not None:
        ctx = CommandContext(config=ctx.config, settings=ctx.settings, json_mode=json_mode)
    ctx.require_project()
    cancel = CancelToken()
    client = AzureDevOpsClient(ctx.config)
    try:
        result = client.wiql(query, top, cancel=cancel)
        items = _fetch_list(client, result.ids(), cancel)
    finally:
        client.close()
    _render_list(ctx, items)


def _parse_id(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise InvalidArgsError("work item id must be a number", details=raw) from None
    if value <= 0:
        raise InvalidArgsError("work item id must be a positive number", details=raw)
    return value


class TfsGroup(click.Group):
    """Grupo que reporta comando desconhecido no mesmo envelope de erro dos demais comandos."""

    def resolve_command(self, ctx: click.Context, args: list[str]) -> Any:
        name = args[0] if args else ""
        if name and not name.startswith("-") and self.get_command(ctx, name) is None:
            _fail(UnknownCommandError(f"unknown command: {name}", details=name), True)
        return super().resolve_command(ctx, args)


def _split_csv(value: str) -> list[str]:
    return [p.strip() for p in (value or "").split(",") if p.strip()]


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@click.group(cls=TfsGroup)
@click.version_option(version=__version__, prog_name="tfs")
def cli() -> None:
    """tfs - CLI para TFS / Azure DevOps Server."""
    try:
        level = load_settings().TFS_LOG_LEVEL
    except ConfigInvalidError:
        level = "WARNING"
    logging.basicConfig(
        level=getattr(logging, (level or "WARNING").upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


@cli.command("wiql")
@click.argument("query", required=False, default="")
@click.option("--top", type=int, default=0, help="Máximo de resultados")
@global_options
def wiql_cmd(query: str, top: int, opts: GlobalOptions) -> None:
    """Executa uma consulta WIQL e lista os itens encontrados."""
    if not query:
        raise InvalidArgsError("WIQL query is required")
    _run_query(opts, query, top)


@cli.command("search")
@click.argument("text", required=False, default="")
@click.option("--query", "query_opt", default="", help="Texto a buscar")
@click.option("--top", type=int, default=0, help="Máximo de resultados")
@global_options
def search_cmd(text: str, query_opt: str, top: int, opts: GlobalOptions) -> None:
    """Busca por texto em título e descrição."""
    query = query_opt or text
    if not query:
        raise InvalidArgsError("search query is required")
    _run_query(opts, search_query(query), top)


@cli.command("my")
@click.option("--type", "type_filter", default="", help="Tipo de work item")
@click.option("--all-types/--no-all-types", default=True, help="Não filtra por tipo")
@click.option("--exclude-state", default="", help="Exclui itens neste estado (substitui o filtro padrão)")
@click.option("--all-states", is_flag=True, help="Não filtra por estado")
@click.option("--top", type=int, default=0, help="Máximo de resultados")
@global_options
def my_cmd(
    type_filter: str, all_types: bool, exclude_state: str, all_states: bool, top: int, opts: GlobalOptions
) -> None:
    """Lista meus itens no projeto atual."""
    if type_filter.strip():
        all_types = False
    settings = load_settings()
    query = my_items_query(type_filter, all_types, exclude_state, all_states, settings.my_default_states)
    _run_query(opts, query, top, json_mode=opts.as_json and opts.json_explicit)


@cli.command("view")
@click.argument("work_item_id", required=False, default="")
@click.option("--fields", "fields_csv", default="", help="Campos separados por vírgula")
@click.option("--expand", default="none", help="none, relations ou all")
@global_options
def view_cmd(work_item_id: str, fields_csv: str, expand: str, opts: GlobalOptions) -> None:
    """Mostra um work item por ID."""
    if not work_item_id:
        raise InvalidArgsError("work item id is required")
    wi_id = _parse_id(work_item_id)
    ctx = build_context(opts)
    ctx.require_project()
    expand_value = EXPAND_VALUES.get(expand.strip().lower())
    if expand_value is None:
        raise InvalidArgsError("expand must be none, relations, or all", details=expand)
    client = AzureDevOpsClient(ctx.config)
    try:
        wi = client.get_work_item(wi_id, _split_csv(fields_csv), expand_value, cancel=CancelToken())
    finally:
        client.close()
    _render_work_item(ctx, wi)


@cli.command("show")
@click.argument("work_item_id", required=False, default="")
@click.option("--children-rel", default=CHILD_RELATION, help="Tipo de relação dos filhos")
@click.option("--max-children", type=int, default=20, help="Máximo de filhos exibidos")
@global_options
def show_cmd(work_item_id: str, children_rel: str, max_children: int, opts: GlobalOptions) -> None:
    """Mostra detalhes de um work item e seus filhos."""
    if not work_item_id:
        raise InvalidArgsError("work item id is required")
    wi_id = _parse_id(work_item_id)
    ctx = build_context(opts)
    ctx = CommandContext(config=ctx.config, settings=ctx.settings, json_mode=opts.as_json and opts.json_explicit)
    ctx.require_project()
    cancel = CancelToken()
    client = AzureDevOpsClient(ctx.config)
    try:
        wi = client.get_work_item(wi_id, SHOW_FIELDS, "None", cancel=cancel)
        try:
            rel_wi = client.get_work_item(wi_id, None, "Relations", cancel=cancel)
            wi = wi.model_copy(update={"relations": rel_wi.relations})
        except CancelledError:
            raise
        except TfsError as e:
            logger.debug("Relações do work item %s indisponíveis: %s", wi_id, e)
        child_ids = wi.relation_ids(children_rel)
        if max_children > 0:
            child_ids = child_ids[:max_children]
        children = _fetch_list(client, child_ids, cancel) if child_ids else []
    finally:
        client.close()
    normalized = normalize_work_item(wi)
    _emit(
        ctx,
        {"workItem": normalized, "children": children, "raw": raw_work_item(wi)},
        lambda: work_item_details_text(normalized, children),
    )


@cli.command("update")
@click.argument("work_item_id", required=False, default="")
@click.option("--set", "sets", multiple=True, help="Campo=Valor (repetível)")
@click.option("--add-comment", "comment", default="", help="Comentário em System.History")
@click.option("--yes", is_flag=True, help=f"Confirma atualização em massa (>{BULK_UPDATE_LIMIT} campos)")
@global_options
def update_cmd(work_item_id: str, sets: tuple[str, ...], comment: str, yes: bool, opts: GlobalOptions) -> None:
    """Atualiza campos e/ou adiciona comentário."""
    if not work_item_id:
        raise InvalidArgsError("work item id is required")
    wi_id = _parse_id(work_item_id)
    if not sets and not comment:
        raise InvalidArgsError("at least one --set or --add-comment is required")
    if len(sets) > BULK_UPDATE_LIMIT and not yes:
        raise ConfirmationRequiredError(f"more than {BULK_UPDATE_LIMIT} fields updated; use --yes to proceed")
    ctx = build_context(opts)
    ctx.require_project()
    patch = build_update_patch(sets, comment)
    client = AzureDevOpsClient(ctx.config)
    try:
        wi = client.update_work_item(wi_id, patch, cancel=CancelToken())
    finally:
        client.close()
    _render_work_item(ctx, wi)


@cli.command("create")
@click.option("--type", "work_item_type", default="", help="Tipo de work item (nome; ver tfs types)")
@click.option("--title", default="", help="Título")
@click.option("--assigned-to", default="", help="Responsável (padrão: dono do PAT)")
@click.option("--parent", "parent_id", type=int, default=0, help="ID do work item pai")
@click.option("--parent-rel", default=PARENT_RELATION, help="Tipo de relação com o pai")
@click.option("--set", "sets", multiple=True, help="Campo=Valor (repetível)")
@global_options
def create_cmd(
    work_item_type: str,
    title: str,
    assigned_to: str,
    parent_id: int,
    parent_rel: str,
    sets: tuple[str, ...],
    opts: GlobalOptions,
) -> None:
    """Cria um work item."""
    if not work_item_type or not title:
        raise InvalidArgsError("--type and --title are required")
    ctx = build_context(opts)
    ctx.require_project()
    cancel = CancelToken()
    client = AzureDevOpsClient(ctx.config)
    try:
        resolver = IdentityResolver(client)
        patch = build_create_patch(
            title,
            assigned_to,
            sets,
            lambda: resolver.resolve_assignee(cancel),
            parent_id=parent_id,
            parent_url=client.work_item_url,
            parent_rel=parent_rel,
        )
        wi = client.create_work_item(work_item_type, patch, cancel=cancel)
    finally:
        client.close()
    _render_work_item(ctx, wi)


@cli.command("types")
@global_options
def types_cmd(opts: GlobalOptions) -> None:
    """Lista os tipos de work item do projeto."""
    ctx = build_context(opts)
    ctx.require_project()
    client = AzureDevOpsClient(ctx.config)
    try:
        types = client.list_work_item_types(cancel=CancelToken())
    finally:
        client.close()
    _emit(ctx, types_payload(types), lambda: types_table(types))


@cli.command("whoami")
@global_options
def whoami_cmd(opts: GlobalOptions) -> None:
    """Mostra a identidade resolvida a partir do PAT."""
    ctx = build_context(opts)
    client = AzureDevOpsClient(ctx.config)
    try:
        resolution = IdentityResolver(client).whoami(CancelToken())
    finally:
        client.close()
    payload = resolution.to_dict()

    def text() -> str:
        lines = [f"{key[0].upper()}{key[1:]}: {_text_value(value)}" for key, value in payload.items()]
        return "\n".join(lines)

    _emit(ctx, payload, text)


def _text_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return to_json(value)
    return "" if value is None else str(value)


@cli.group("config", cls=TfsGroup, invoke_without_command=True)
@click.pass_context
def config_group(ctx: click.Context) -> None:
    """Mostra ou altera o arquivo de configuração."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(config_view)


@config_group.command("view")
@click.option("--json/--no-json", "as_json", default=True, help="Saída JSON (--no-json para texto)")
def config_view(as_json: bool = True) -> None:
    """Mostra a configuração (PAT mascarado)."""
    try:
        cfg = load_file_config().redacted()
    except TfsError as e:
        _fail(e, as_json)
    if as_json:
        click.echo(to_json(cfg.to_file_dict()))
        return
    click.echo(f"BaseURL: {cfg.base_url}\nProject: {cfg.project}\nPAT: {cfg.pat}")


@config_group.command("set")
@click.option("--base-url", default=None, help="URL base")
@click.option("--project", default=None, help="Projeto padrão")
@click.option("--pat", default=None, help="PAT")
@click.option("--json/--no-json", "as_json", default=True, help="Saída JSON (--no-json para texto)")
def config_set(base_url: Optional[str], project: Optional[str], pat: Optional[str], as_json: bool) -> None:
    """Grava valores no arquivo de configuração."""
    try:
        if base_url is None and project is None and pat is None:
            raise InvalidArgsError("at least one of --base-url, --project, or --pat is required")
        cfg = load_file_config()
        update = {k: v for k, v in (("base_url", base_url), ("project", project), ("pat", pat)) if v is not None}
        cfg = cfg.model_copy(update=update)
        save_file_config(cfg)
    except TfsError as e:
        _fail(e, as_json)
    except OSError as e:
        _fail(ConfigInvalidError(f"could not write config file: {e}"), as_json)
    if as_json:
        click.echo(to_json(cfg.redacted().to_file_dict()))
        return
    click.echo("Config updated")


def main(argv: Optional[list[str]] = None) -> int:
    try:
        cli.main(args=argv, prog_name="tfs")
    except SystemExit as e:
        if e.code is None:
            return 0
        return e.code if isinstance(e.code, int) else 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
