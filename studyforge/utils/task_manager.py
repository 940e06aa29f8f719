import os
import json
import time
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Any, Callable, Dict, Optional

import redis

from studyforge.utils.logger import get_logger

LOG = get_logger()

TASK_TTL_SECONDS = int(os.getenv('TASK_TTL_SECONDS', '86400'))
REDIS_URL = os.getenv('REDIS_URL', None)


class TaskStatus(str, Enum):
    PENDING = 'pending'
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    FAILED = 'failed'


class TaskManager:
    """Runs background ingestion work and keeps a record of its progress.

    Records go to Redis when ``REDIS_URL`` is configured and reachable, otherwise
    to an in-process dict. Work is executed on a thread pool; callers get a
    ``Future`` back but never need to wait on it.
    """

    _instance = None

    def __init__(self, max_workers: int = 4, redis_client=None):
        self._use_redis = False
        self._client = redis_client
        self._in_memory: Dict[str, Dict[str, Any]] = {}
        self._futures: Dict[str, Future] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='ingest')
        try:
            if self._client is None and REDIS_URL:
                self._client = redis.from_url(REDIS_URL, decode_responses=True)
            if self._client is not None:
                self._client.ping()
                self._use_redis = True
                LOG.info('task_manager_redis_connected')
        except Exception as e:
            LOG.warning('task_manager_redis_unavailable', extra={'error': str(e)})
            self._use_redis = False
            self._client = None

    @classmethod
    def get_instance(cls) -> 'TaskManager':
        if cls._instance is None:
            cls._instance = TaskManager()
        return cls._instance

    def _key(self, task_id: str) -> str:
        return f'task:{task_id}'

    def _save(self, task_id: str, obj: Dict[str, Any]):
        obj['updated_at'] = int(time.time())
        try:
            if self._use_redis and self._client:
                self._client.setex(self._key(task_id), TASK_TTL_SECONDS, json.dumps(obj))
            else:
                with self._lock:
                    self._in_memory[task_id] = obj
        except Exception as e:
            LOG.warning('task_save_failed', extra={'task_id': task_id, 'error': str(e)})

    def create_task(self, task_id: str, user_id: int, document_id: int, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        now = int(time.time())
        obj = {
            'task_id': task_id,
            'user_id': user_id,
            'document_id': document_id,
            'status': TaskStatus.PENDING.value,
            'current_step': '',
            'steps_completed': [],
            'error_message': None,
            'metadata': metadata or {},
            'created_at': now,
            'updated_at': now,
        }
        self._save(task_id, obj)
        LOG.info('task_created', extra={'task_id': task_id, 'user_id': user_id, 'document_id': document_id})
        return obj

    def get_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        try:
            if self._use_redis and self._client:
                raw = self._client.get(self._key(task_id))
                return json.loads(raw) if raw else None
        except Exception as e:
            LOG.warning('task_get_failed', extra={'task_id': task_id, 'error': str(e)})
        with self._lock:
            return self._in_memory.get(task_id)

    def update_status(self, task_id: str, status: TaskStatus, current_step: Optional[str] = None):
        task = self.get_task(task_id)
        if not task:
            LOG.warning('update_status_task_not_found', extra={'task_id': task_id})
            return None
        task['status'] = status.value if isinstance(status, TaskStatus) else status
        if current_step is not None:
            task['current_step'] = current_step
        self._save(task_id, task)
        return task

    def mark_step_complete(self, task_id: str, step_name: str):
        task = self.get_task(task_id)
        if not task:
            LOG.warning('mark_step_complete_task_not_found', extra={'task_id': task_id})
            return None
        if step_name not in task['steps_completed']:
            task['steps_completed'].append(step_name)
        self._save(task_id, task)
        LOG.info('task_step_completed', extra={'task_id': task_id, 'step': step_name})
        return task

    def complete_task(self, task_id: str):
        task = self.get_task(task_id)
        if not task:
            LOG.warning('complete_task_not_found', extra={'task_id': task_id})
            return None
        task['status'] = TaskStatus.COMPLETED.value
        task['current_step'] = ''
        self._save(task_id, task)
        LOG.info('task_completed', extra={'task_id': task_id})
        return task

    def fail_task(self, task_id: str, error_msg: str):
        task = self.get_task(task_id)
        if not task:
            LOG.warning('fail_task_not_found', extra={'task_id': task_id})
            return None
        task['status'] = TaskStatus.FAILED.value
        task['error_message'] = error_msg
        self._save(task_id, task)
        LOG.error('task_failed', extra={'task_id': task_id, 'error': error_msg})
        return task

    def submit(self, task_id: str, fn: Callable[..., Any], *args, **kwargs) -> Future:
        future = self._executor.submit(fn, *args, **kwargs)
        with self._lock:
            self._futures[task_id] = future
        future.add_done_callback(lambda _f: self._forget(task_id, _f))
        return future

    def _forget(self, task_id: str, future: Future):
        with self._lock:
            if self._futures.get(task_id) is future:
                del self._futures[task_id]

    def wait(self, task_id: str, timeout: Optional[float] = None):
        with self._lock:
            future = self._futures.get(task_id)
        if future is not None:
            future.result(timeout=timeout)

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)
