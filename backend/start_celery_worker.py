#!/usr/bin/env python3
"""Start the import Celery worker with suppressed security warnings for containerized environments."""

import sys
import warnings

# Suppress the superuser privilege warning
warnings.filterwarnings('ignore', category=UserWarning, message='.*superuser privileges.*')
warnings.filterwarnings('ignore', category=RuntimeWarning, message='.*superuser privileges.*')

from gestionale_import.workers.celery_app import celery_app

if __name__ == '__main__':
    # One job owns one transaction at a time; run jobs one after another
    argv = [
        'worker',
        '--loglevel=info',
        '--queues=imports',
        '--pool=solo',
        '--without-mingle',
        '--without-gossip',
    ] + sys.argv[1:]

    celery_app.worker_main(argv)
