"""
Query Catalog - Diagnostic queries run against a Redshift cluster each tick.

Each entry pairs a query against the system catalog / STL / STV views with the
measurement category its rows are emitted under. Time-windowed queries carry a
``{lookback_seconds}`` placeholder that is rendered when the catalog is built,
so a changed lookback interval applies on the very next collection cycle.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from ..errors import InvalidLookbackError


@dataclass(frozen=True)
class QueryDescriptor:
    """A single diagnostic query, fully rendered and ready to execute."""
    name: str
    script: str
    category: str


@dataclass(frozen=True)
class QueryTemplate:
    """Static definition of a catalog entry."""
    name: str
    template: str
    category: str
    windowed: bool = False

    def render(self, lookback_seconds: int) -> QueryDescriptor:
        script = self.template
        if self.windowed:
            script = script.format(lookback_seconds=lookback_seconds)
        return QueryDescriptor(name=self.name, script=script, category=self.category)


COLUMNS_NOT_COMPRESSED = """
select
    count(a.attname) as "Columns Not Compressed"
from pg_namespace n, pg_class c, pg_attribute a
where n.oid = c.relnamespace
and c.oid = a.attrelid
and a.attnum > 0
and NOT a.attisdropped
and n.nspname NOT IN ('information_schema','pg_catalog','pg_toast')
and format_encoding(a.attencodingtype::integer) = 'none'
and c.relkind='r' and a.attsortkeyord != 1;
"""

DISK_PCT_USED = """
select isnull(sum(used)::float / nullif(sum(capacity), 0), 0) as "Disk Percent Full"
from stv_partitions;
"""

TABLE_INFO = """
select
    isnull(sum(case when encoded = 'N' then 1 else 0 end), 0) as "Tables Not Compressed",
    isnull(max(case when isnull(skew_rows,0) >= isnull(skew_sortkey1,0)
                then isnull(skew_rows,0)
                else isnull(skew_sortkey1,0)
                end
    ), 0) as "Max Skew Sort Ratio",
    isnull(sum(isnull(skew_rows,0)) + sum(isnull(skew_sortkey1,0)), 0) as "Total Skew Sort Ratio",
    isnull(sum(case when skew_rows is not null then 1 else 0 end)
        + sum(case when skew_sortkey1 is not null then 1 else 0 end), 0) as "Number of Tables Skew Sort",
    isnull(sum(case when isnull(skew_rows, 0) > 0 then 1 else 0 end), 0) as "Number of Tables Skewed",
    isnull(sum(case when stats_off is not null then 1 else 0 end), 0) as "Number of Tables Stats Off",
    isnull(max(isnull(max_varchar,0)), 0) as "Max VarChar Size",
    isnull(max(isnull(unsorted,0)), 0) as "Max Unsorted Percent",
    isnull(sum(isnull(tbl_rows,0)), 0) as "Total Table Rows"
from svv_table_info;
"""

QUERY_SCAN_NO_SORT = """
select isnull(sum(nvl(s.num_qs,0)), 0) as "Query Scans No Sort"
from svv_table_info t
left join (
    select tbl, COUNT(distinct query) num_qs
    from stl_scan s
    where s.userid > 1 and starttime >= GETDATE() - INTERVAL '{lookback_seconds} seconds'
    group by tbl) s
on s.tbl = t.table_id
where t.sortkey1 IS NULL;
"""

TOTAL_WLM_QUEUE_TIME = """
select isnull(SUM(w.total_queue_time) / 1000000.0, 0) as "Total WLM Queue Time Seconds"
from stl_wlm_query w
where w.queue_start_time >= GETDATE() - INTERVAL '{lookback_seconds} seconds'
and w.total_queue_time > 0;
"""

TOTAL_DISK_BASED_QUERIES = """
select isnull(count(distinct query), 0) as "Total Disk Based Queries"
from svl_query_report
where is_diskbased='t'
and (LABEL LIKE 'hash%' OR LABEL LIKE 'sort%' OR LABEL LIKE 'aggr%')
and userid > 1 and start_time >= GETDATE() - INTERVAL '{lookback_seconds} seconds';
"""

AVG_COMMIT_QUEUE = """
select isnull(avg(datediff(ms,startqueue,startwork)), 0) as "Avg Commit Queue Size"
from stl_commit_stats
where startqueue >= GETDATE() - INTERVAL '{lookback_seconds} seconds';
"""

TOTAL_ALERTS = """
select isnull(count(distinct l.query), 0) as "Total Alerts"
from stl_alert_event_log as l
where l.userid > 1 and l.event_time >= GETDATE() - INTERVAL '{lookback_seconds} seconds';
"""

AVG_QUERY_TIME = """
select isnull(avg(datediff(ms, starttime, endtime)), 0) as "Avg Query Time ms"
from stl_query
where starttime >= GETDATE() - INTERVAL '{lookback_seconds} seconds';
"""

TOTAL_PACKETS = """
select isnull(sum(packets), 0) as "Total Packets"
from stl_dist
where starttime >= GETDATE() - INTERVAL '{lookback_seconds} seconds';
"""

QUERIES_TRAFFIC = """
select isnull(sum(total), 0) as "Queries Traffic"
from (
    select count(query) total
    from stl_dist
    where starttime >= GETDATE() - INTERVAL '{lookback_seconds} seconds'
    group by query
    having sum(packets) > 1000000
);
"""

DB_CONNECTIONS = """
select isnull(count(event), 0) as "Database Connections"
from stl_connection_log
where event = 'initiating session'
and username != 'rdsdb'
and pid not in (
        select pid
        from stl_connection_log
        where event = 'disconnecting session'
    );
"""

LOAD_ROW_SCANS = """
select isnull(sum(lines_scanned), 0) as "COPY - Load Lines Scanned"
from stl_load_commits
where curtime >= GETDATE() - INTERVAL '{lookback_seconds} seconds';
"""

LOAD_ERRORS = """
select isnull(count(1), 0) as "COPY - Load Errors"
from stl_load_errors
where starttime >= GETDATE() - INTERVAL '{lookback_seconds} seconds';
"""

UNLOADED_ROWS = """
select isnull(sum(line_count), 0) as "COPY - UnLoad Rows"
from stl_unload_log
where start_time >= GETDATE() - INTERVAL '{lookback_seconds} seconds';
"""

ANALYZE_OPS = """
select isnull(count(1), 0) as "Analyze Operations"
from stl_analyze
where starttime >= GETDATE() - INTERVAL '{lookback_seconds} seconds';
"""

ANALYZE_DURATION = """
select isnull(avg(datediff(second, starttime, endtime)), 0) as "Avg Analyze Duration sec"
from stl_analyze
where starttime >= GETDATE() - INTERVAL '{lookback_seconds} seconds'
and endtime is not null;
"""

WLM_SERVICE = """
select isnull(sum(num_queued_queries), 0) as "Queued Queries"
    , isnull(sum(num_executing_queries), 0) as "Executing Queries"
    , isnull(sum(num_serviced_queries), 0) as "Serviced Queries"
    , isnull(sum(num_evicted_queries), 0) as "Evicted Queries"
from stv_wlm_service_class_state s
join stv_wlm_service_class_config c
on s.service_class = c.service_class and c.service_class > 4;
"""

# One row per user-defined service class
WLM_SERVICE_CLASS = """
select s.service_class as "Service Class"
    , isnull(s.num_queued_queries, 0) as "Queued Queries"
    , isnull(s.num_executing_queries, 0) as "Executing Queries"
    , isnull(s.num_serviced_queries, 0) as "Serviced Queries"
    , isnull(s.num_evicted_queries, 0) as "Evicted Queries"
from stv_wlm_service_class_state s
join stv_wlm_service_class_config c
on s.service_class = c.service_class and c.service_class > 4
order by s.service_class;
"""

CURRENT_QUERIES = """
select isnull(count(1), 0) as "Currently Running Queries"
from stv_inflight
where pid != pg_backend_pid();
"""


QUERY_TEMPLATES: Dict[str, QueryTemplate] = {
    t.name: t for t in (
        QueryTemplate("ColumnsNotCompressed", COLUMNS_NOT_COMPRESSED, "column"),
        QueryTemplate("TableInfo", TABLE_INFO, "table"),
        QueryTemplate("QueryScanNoSort", QUERY_SCAN_NO_SORT, "query", windowed=True),
        QueryTemplate("TotalWLMQueueTime", TOTAL_WLM_QUEUE_TIME, "wlm", windowed=True),
        QueryTemplate("TotalDiskBasedQueries", TOTAL_DISK_BASED_QUERIES, "query", windowed=True),
        QueryTemplate("AvgCommitQueue", AVG_COMMIT_QUEUE, "operation", windowed=True),
        QueryTemplate("TotalAlerts", TOTAL_ALERTS, "operation", windowed=True),
        QueryTemplate("AvgQueryTime", AVG_QUERY_TIME, "query", windowed=True),
        QueryTemplate("TotalPackets", TOTAL_PACKETS, "network", windowed=True),
        QueryTemplate("QueriesTraffic", QUERIES_TRAFFIC, "network", windowed=True),
        QueryTemplate("DbConnections", DB_CONNECTIONS, "operation"),
        QueryTemplate("CopyLoadLineScans", LOAD_ROW_SCANS, "operation", windowed=True),
        QueryTemplate("CopyLoadErrors", LOAD_ERRORS, "operation", windowed=True),
        QueryTemplate("CopyUnloadedRows", UNLOADED_ROWS, "operation", windowed=True),
        QueryTemplate("AnalyzeOperations", ANALYZE_OPS, "operation", windowed=True),
        QueryTemplate("AnalyzeDuration", ANALYZE_DURATION, "operation", windowed=True),
        QueryTemplate("WLMService", WLM_SERVICE, "wlm"),
        QueryTemplate("WLMServiceClass", WLM_SERVICE_CLASS, "wlm"),
        QueryTemplate("RunningQueries", CURRENT_QUERIES, "query"),
        QueryTemplate("DiskPctUsage", DISK_PCT_USED, "disk"),
    )
}


def validate_lookback(lookback_seconds) -> int:
    """
    Check that the lookback window is a positive integer.

    The value is spliced into SQL text, so anything other than a real int
    (bools and numeric strings included) is rejected.
    """
    if isinstance(lookback_seconds, bool) or not isinstance(lookback_seconds, int):
        raise InvalidLookbackError(
            f"lookback_seconds must be an integer, got {type(lookback_seconds).__name__}"
        )
    if lookback_seconds <= 0:
        raise InvalidLookbackError(f"lookback_seconds must be positive, got {lookback_seconds}")
    return lookback_seconds


def build_catalog(
    lookback_seconds: int,
    names: Optional[Iterable[str]] = None,
    templates: Optional[Dict[str, QueryTemplate]] = None
) -> Dict[str, QueryDescriptor]:
    """
    Render the query catalog for one collection cycle.

    Args:
        lookback_seconds: Trailing window scanned by the time-windowed queries
        names: Restrict the catalog to these query names (default: all)
        templates: Template set to render (default: QUERY_TEMPLATES)

    Returns:
        Mapping of query name to rendered QueryDescriptor

    Raises:
        InvalidLookbackError: If lookback_seconds is not a positive integer
        KeyError: If names contains an unknown query
    """
    validate_lookback(lookback_seconds)
    templates = QUERY_TEMPLATES if templates is None else templates

    if names is None:
        selected = list(templates)
    else:
        selected = list(names)
        unknown = [name for name in selected if name not in templates]
        if unknown:
            raise KeyError(f"Unknown queries: {', '.join(unknown)}")

    return {name: templates[name].render(lookback_seconds) for name in selected}
