"""Run ARQ worker. Usage: python -m app.worker.run_worker"""

from arq import run_worker
from arq.cron import cron

from app.worker.tasks import audit_ledger_consistency, deliver_telegram, get_redis_settings, shutdown, startup


class WorkerSettings:
    redis_settings = get_redis_settings()
    functions = [deliver_telegram]
    cron_jobs = [
        cron(audit_ledger_consistency, hour={3}, minute={0}),  # nightly
    ]
    on_startup = startup
    on_shutdown = shutdown
    max_tries = 3


def main() -> None:
    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
