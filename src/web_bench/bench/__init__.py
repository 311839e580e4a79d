"""Benchmark engine: sampling, execution, storage and agreement statistics.

Flow for one run::

    population + denylist -> sample_targets -> select_shard
        -> run_pool(TaskExecutor.execute) -> JsonlResultStore
        -> compute_concordance -> render_summary_lines

Per-target failures never leave the executor; they become ``error`` results.
Only setup problems (``FatalSetupError``) and store write failures
(``StoreWriteError``) abort a run.
"""
