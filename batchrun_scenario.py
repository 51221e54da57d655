# batchrun_scenario.py
# Demo scenario against the dummy DB:  batchrun run batchrun_scenario.py --var WORK_DIR=/tmp/batchrun-demo
from __future__ import annotations
from batchrun.dsl import scenario, sql, shell, extract, loop, confirm

SCENARIO = scenario(
    "demo-nightly",
    # Create a couple of input files to loop over
    shell(
        "prepare",
        "mkdir -p ${WORK_DIR}/in && for n in 1 2 3; do echo \"rows=$((n * 10))\" > ${WORK_DIR}/in/part$n.dat; done",
        name="Prepare inputs",
    ),

    # Load each file, then record its row count
    loop(
        "load",
        "${WORK_DIR}/in/*.dat",
        "FILE",
        shell("show", "cat ${FILE}"),
        extract("count", "${FILE}", line=1, pattern=r"rows=(\d+)", var="ROWS", needs=["show"]),
        sql("audit", "insert into load_audit(file, rows) values ('${FILE}', ${ROWS})", needs=["count"]),
        name="Load input files",
        needs=["prepare"],
        timeout=300,
    ),

    # Independent housekeeping, allowed to overlap
    shell("disk", "df -h ${WORK_DIR}", parallel=True, needs=["prepare"], on_error="ignore"),
    sql("stats", "analyze load_audit", parallel=True, needs=["load"], retry=2),

    # Human gate before the final step
    shell(
        "report",
        "echo \"last file had ${ROWS} rows\"",
        needs=["load", "disk", "stats"],
        confirm=confirm(before=True, message_before="Publish the nightly report?"),
    ),
)
