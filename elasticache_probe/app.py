"""
ElastiCache Probe - times a connect / HSET / HGETALL round trip

Every invocation opens a brand new cluster connection, writes one synthetic
session hash, reads it back and prints a single JSON line with the duration
of each phase. The line is picked up from CloudWatch by the benchmark scripts.

Environment:
    ELASTICACHE_ENDPOINT   cluster configuration endpoint host
    ELASTICACHE_PORT       cluster port (default 6379)
"""
import json
import os
import time
import logging
from datetime import datetime

from redis.cluster import RedisCluster

from elasticache_probe.session import SessionRecord, new_session_id

logger = logging.getLogger()
logger.setLevel(logging.INFO)

REDIS_ENDPOINT = os.environ.get('ELASTICACHE_ENDPOINT')
REDIS_PORT = int(os.environ.get('ELASTICACHE_PORT') or '6379')


def connect():
    return RedisCluster(host=REDIS_ENDPOINT, port=REDIS_PORT, decode_responses=True)


def write_data(client, session_id):
    """HSET a fresh record under session_id, returns elapsed seconds."""
    record = SessionRecord.generate()

    t0 = time.monotonic()
    client.hset(session_id, mapping=record.to_mapping())
    return time.monotonic() - t0


def read_data(client, session_id):
    """HGETALL session_id (JSON-encoded like a real reader would), returns elapsed seconds."""
    t0 = time.monotonic()
    json.dumps(client.hgetall(session_id))
    return time.monotonic() - t0


def log_result(request_id, connection, write, read):
    print(json.dumps({
        "type": "ECL",
        "requestId": request_id,
        "connection": connection,
        "write": write,
        "read": read
    }))


def log_error(request_id, error):
    print(json.dumps({
        "type": "ECL-ERROR",
        "timestamp": datetime.now().astimezone().isoformat(timespec='milliseconds'),
        "requestId": request_id,
        "error": str(error)
    }))


def lambda_handler(event, context):
    """
    Input:  { "request_id": "<optional caller id>" }
    Output: API Gateway style response whose body is {"write": s, "read": s},
            or {"error": "<message>"} if any phase fails.
    """
    event = event or {}
    request_id = context.aws_request_id

    if event.get('request_id') is not None:
        logger.info(f"Caller Request ID: {event['request_id']}")

    client = None
    try:
        t0 = time.monotonic()
        # new connection on every call, never reused
        client = connect()
        connection = time.monotonic() - t0

        session_id = new_session_id()

        write = write_data(client, session_id)
        read = read_data(client, session_id)

        log_result(request_id, connection, write, read)
    except Exception as e:
        log_error(request_id, e)
        return {"error": str(e)}
    finally:
        if client is not None:
            try:
                client.close()
            except Exception as e:
                logger.warning(f"Error closing cluster connection: {e}")

    return {
        "statusCode": 200,
        "statusDescription": "200 Ok",
        "isBase64Encoded": False,
        "headers": {
            "Content-Type": "application/json"
        },
        "body": json.dumps({"write": write, "read": read})
    }
