"""RQ worker process for queued crawl runs."""
