# Gunicorn configuration for Shipyard
# Only one worker owns the backup scheduler

import os
import logging

logger = logging.getLogger('gunicorn.error')

bind = os.environ.get('GUNICORN_BIND', '0.0.0.0:5000')
workers = int(os.environ.get('GUNICORN_WORKERS', 2))

# create_app() reads SCHEDULER_WORKER, so the app must load in each worker after post_fork
preload_app = False


def post_fork(server, worker):
    """
    Designate the first spawned worker (worker.age == 1) as scheduler owner.

    Runs in the worker process before the application is loaded. The arbiter
    numbers workers from 1, and a replacement worker gets a new age, so after
    the owner is recycled no worker runs the scheduler until a restart. The
    per-definition lease lock guards against overlapping runs either way.
    """
    if worker.age == 1:
        os.environ['SCHEDULER_WORKER'] = 'true'
        logger.info(f"Worker PID {worker.pid} (age={worker.age}): scheduler owner")
    else:
        os.environ['SCHEDULER_WORKER'] = 'false'
        logger.info(f"Worker PID {worker.pid} (age={worker.age}): HTTP worker (scheduler disabled)")
