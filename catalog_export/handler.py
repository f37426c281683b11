"""
One export run, start to finish.

    token -> directory routes -> documents -> CSV -> delivery

Every failure inside run() propagates up to handler(), which is the only
place an exception is caught; it is logged there and turned into a failure
status so the caller always gets a RunStatus back.
"""

import asyncio
import logging
import time
from collections import namedtuple

from .api import ApiClient, elapsed_ms, fetch_access_token
from .delivery import HttpUploadSink, LocalDirectorySink, deliver_with_retry
from .errors import error_message
from .fetcher import PaginatedFetcher
from .hierarchy import HierarchyBuilder
from .report import ReportAssembler, report_file_name

log = logging.getLogger("catalog-export")

RunStatus = namedtuple("RunStatus", ["code", "message"])

OK = RunStatus(200, "ok")
FAILED = RunStatus(500, "Internal Server Error")


def make_sink(config):
    if config.local or not config.upload_url:
        return LocalDirectorySink(config.output_dir)
    return HttpUploadSink(config.upload_url, config.upload_token, config.request_timeout)


async def fetch_documents(fetcher, scope_ids, list_type=None):
    """All documents of every scope, with owner/target relationships hydrated."""
    begin = time.monotonic()
    per_scope = await asyncio.gather(*(
        fetcher.fetch_all("/docs", {"list_type": list_type, "team_id": scope_id},
                          resolve_included=True)
        for scope_id in scope_ids
    ))
    documents = [doc for docs in per_scope for doc in docs]
    log.info("Fetched %d documents in %d ms", len(documents), elapsed_ms(begin))
    return documents


async def run(config, client=None, sink=None, now=None):
    """Do the export. Raises on any failure; see handler() for the safe wrapper."""
    client = client or ApiClient(config.api_url, config.request_timeout, config.https_proxy)
    await asyncio.to_thread(fetch_access_token, client, config.app_key, config.app_secret)

    # Token lives under the issuer root, list endpoints under /v1
    client.base_url = config.api_v1
    fetcher = PaginatedFetcher(client, config.page_size, config.concurrency)

    path_table = await HierarchyBuilder(fetcher, "/directories").build(config.scope_ids)
    documents = await fetch_documents(fetcher, config.scope_ids, config.list_type)

    assembler = ReportAssembler(
        path_table,
        report_offset_hours=config.report_offset_hours,
        source_offset_hours=config.source_offset_hours,
        include_creator=config.include_creator,
    )
    data = assembler.render(documents, now)
    name = report_file_name(config.file_prefix, config.report_offset_hours, now)

    sink = sink or make_sink(config)
    log.info("Delivering %s (%d bytes) to %r", name, len(data), sink)
    return await asyncio.to_thread(deliver_with_retry, sink, data, name, config.max_attempts)


def handler(config, **kwargs):
    """Run the export and report the outcome as a RunStatus; never raises."""
    begin = time.monotonic()
    try:
        asyncio.run(run(config, **kwargs))
    except Exception as e:
        log.error("Exception occurred: %s", error_message(e))
        log.debug("Traceback:", exc_info=True)
        return FAILED
    log.info("Export finished in %d s", elapsed_ms(begin) // 1000)
    return OK
