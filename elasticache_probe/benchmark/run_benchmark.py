#!/usr/bin/env python3
"""
ElastiCache Probe Benchmark Runner

Invokes the deployed probe function repeatedly, collects the write/read
timings from each response and the connection timing from the ECL lines the
probe prints to CloudWatch, then writes a JSON results file.

Usage:
    python -m elasticache_probe.benchmark.run_benchmark --iterations 100
    python -m elasticache_probe.benchmark.run_benchmark --cold-iterations 5 --output-file results.json
"""

import boto3
import json
import time
import argparse
import yaml
import statistics
from pathlib import Path
from typing import Dict, List, Optional
from dataclasses import dataclass, field, asdict

from botocore.exceptions import BotoCoreError, ClientError


# ============================================================
# Configuration
# ============================================================

def load_config(config_file: str = "config.yaml") -> dict:
    """Load benchmark configuration from YAML file."""
    config_path = Path(__file__).parent / config_file
    with open(config_path, 'r') as f:
        return yaml.safe_load(f)


CONFIG = load_config()

REGION = CONFIG['aws']['region']
FUNCTION_NAME = CONFIG['aws']['function_name']
LOG_GROUP_PREFIX = CONFIG['cloudwatch']['log_group_prefix']
LOG_WAIT = CONFIG['cloudwatch']['log_wait']

PHASES = ['connection', 'write', 'read']


# ============================================================
# Data Classes
# ============================================================

@dataclass
class ProbeRun:
    """Single probe invocation."""
    run_id: int
    run_type: str  # 'cold' or 'warm'
    request_id: str
    start_time: float
    end_time: Optional[float] = None
    e2e_latency_ms: Optional[float] = None
    aws_request_id: Optional[str] = None
    success: bool = False
    error: Optional[str] = None

    # Phase durations in seconds, as reported by the probe
    connection: Optional[float] = None
    write: Optional[float] = None
    read: Optional[float] = None


@dataclass
class PhaseStats:
    mean_ms: float = 0.0
    median_ms: float = 0.0
    std_ms: float = 0.0
    min_ms: float = 0.0
    max_ms: float = 0.0
    p95_ms: float = 0.0


@dataclass
class ProbeSummary:
    """Summary statistics for one benchmark."""
    total_runs: int
    successful_runs: int
    failed_runs: int
    e2e: PhaseStats = field(default_factory=PhaseStats)
    phases: Dict[str, PhaseStats] = field(default_factory=dict)
    cold_connection_mean_ms: float = 0.0
    warm_connection_mean_ms: float = 0.0


def phase_stats(seconds: List[float]) -> PhaseStats:
    """Stats in milliseconds for a list of durations in seconds."""
    values = [s * 1000 for s in seconds]
    if not values:
        return PhaseStats()

    stats = PhaseStats(
        mean_ms=statistics.mean(values),
        median_ms=statistics.median(values),
        std_ms=statistics.stdev(values) if len(values) > 1 else 0,
        min_ms=min(values),
        max_ms=max(values)
    )
    if len(values) >= 20:
        sorted_values = sorted(values)
        stats.p95_ms = sorted_values[int(len(sorted_values) * 0.95)]
    return stats


def compute_summary(runs: List[ProbeRun]) -> ProbeSummary:
    """Compute summary statistics over successful runs."""
    successful = [r for r in runs if r.success]

    summary = ProbeSummary(
        total_runs=len(runs),
        successful_runs=len(successful),
        failed_runs=len(runs) - len(successful)
    )

    if not successful:
        return summary

    summary.e2e = phase_stats([r.e2e_latency_ms / 1000 for r in successful])
    for phase in PHASES:
        summary.phases[phase] = phase_stats(
            [getattr(r, phase) for r in successful if getattr(r, phase) is not None]
        )

    cold = [r.connection for r in successful if r.run_type == 'cold' and r.connection is not None]
    warm = [r.connection for r in successful if r.run_type == 'warm' and r.connection is not None]
    if cold:
        summary.cold_connection_mean_ms = statistics.mean(cold) * 1000
    if warm:
        summary.warm_connection_mean_ms = statistics.mean(warm) * 1000

    return summary


def parse_ecl_line(message: str) -> Optional[dict]:
    """Return the ECL / ECL-ERROR payload in a CloudWatch message, if any."""
    start = message.find('{')
    if start < 0:
        return None
    try:
        payload = json.loads(message[start:])
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict) or payload.get('type') not in ('ECL', 'ECL-ERROR'):
        return None
    return payload


# ============================================================
# Benchmark Runner
# ============================================================

class ProbeBenchmarkRunner:
    """Runs the probe and gathers its timings."""

    def __init__(self, function_name: str = FUNCTION_NAME, region: str = REGION,
                 lambda_client=None, logs_client=None):
        self.function_name = function_name
        self.region = region
        self.lambda_client = lambda_client or boto3.client('lambda', region_name=region)
        self.logs_client = logs_client or boto3.client('logs', region_name=region)

    @property
    def log_group(self) -> str:
        # ARNs look like arn:aws:lambda:<region>:<account>:function:<name>[:<qualifier>]
        name = self.function_name
        if name.startswith("arn:"):
            name = name.split(":")[6]
        return f"{LOG_GROUP_PREFIX}{name}"

    def _wait_for_function_ready(self, timeout: int = 60):
        """Wait for the function to be Active after a configuration update."""
        deadline = time.time() + timeout
        while time.time() < deadline:
            response = self.lambda_client.get_function_configuration(
                FunctionName=self.function_name
            )
            state = response.get('State', 'Active')
            status = response.get('LastUpdateStatus', 'Successful')
            if state == 'Active' and status == 'Successful':
                return
            time.sleep(1)
        print(f"  Warning: {self.function_name} not ready after {timeout}s")

    def force_cold_start(self):
        """Force a fresh execution environment by touching the environment."""
        response = self.lambda_client.get_function_configuration(
            FunctionName=self.function_name
        )
        env = response.get('Environment', {}).get('Variables', {})
        env['FORCE_COLD'] = str(int(time.time()))

        self.lambda_client.update_function_configuration(
            FunctionName=self.function_name,
            Environment={'Variables': env}
        )
        self._wait_for_function_ready()

    def invoke_probe(self, run_id: int, run_type: str = 'warm') -> ProbeRun:
        """Synchronously invoke the probe once."""
        request_id = f"bench-{int(time.time() * 1000)}-{run_id}"
        run = ProbeRun(
            run_id=run_id,
            run_type=run_type,
            request_id=request_id,
            start_time=time.time()
        )

        try:
            response = self.lambda_client.invoke(
                FunctionName=self.function_name,
                InvocationType='RequestResponse',
                Payload=json.dumps({"request_id": request_id})
            )
            run.end_time = time.time()
            run.e2e_latency_ms = (run.end_time - run.start_time) * 1000
            run.aws_request_id = response.get('ResponseMetadata', {}).get('RequestId')

            payload = json.loads(response['Payload'].read())
            if response.get('FunctionError'):
                run.error = payload.get('errorMessage', response['FunctionError'])
            elif 'error' in payload:
                run.error = payload['error']
            else:
                body = json.loads(payload['body'])
                run.write = body['write']
                run.read = body['read']
                run.success = True
        except (ClientError, BotoCoreError) as e:
            run.end_time = time.time()
            run.error = str(e)

        return run

    def collect_log_metrics(self, runs: List[ProbeRun], start_time: float, end_time: float):
        """Fill in connection timings from the probe's ECL log lines."""
        by_request = {r.aws_request_id: r for r in runs if r.aws_request_id}
        if not by_request:
            return

        kwargs = {
            'logGroupName': self.log_group,
            'startTime': int(start_time * 1000),
            'endTime': int(end_time * 1000) + 60000,  # +60s buffer
            'filterPattern': '"ECL"'
        }

        while True:
            try:
                response = self.logs_client.filter_log_events(**kwargs)
            except ClientError as e:
                print(f"  Warning: could not read {self.log_group}: {e}")
                return

            for event in response.get('events', []):
                payload = parse_ecl_line(event.get('message', ''))
                if payload is None:
                    continue
                run = by_request.get(payload.get('requestId'))
                if run is None:
                    continue
                if payload['type'] == 'ECL':
                    run.connection = payload.get('connection')
                elif run.error is None:
                    run.error = payload.get('error')
                    run.success = False

            token = response.get('nextToken')
            if not token:
                return
            kwargs['nextToken'] = token

    def run_benchmark(self, iterations: int, cold_iterations: int = 0,
                      log_wait: int = LOG_WAIT):
        """Run cold then warm invocations and summarise them."""
        print(f"\n{'='*60}")
        print(f"Benchmark: {self.function_name}")
        print(f"{'='*60}")

        runs = []
        bench_start = time.time()

        for i in range(cold_iterations):
            print(f"  Cold run {i + 1}/{cold_iterations}...")
            self.force_cold_start()
            runs.append(self.invoke_probe(len(runs), run_type='cold'))

        for i in range(iterations):
            run = self.invoke_probe(len(runs), run_type='warm')
            runs.append(run)
            status = 'ok' if run.success else f'FAILED ({run.error})'
            print(f"  Run {i + 1}/{iterations}: {status}")

        if log_wait > 0:
            print(f"  Waiting {log_wait}s for CloudWatch logs...")
            time.sleep(log_wait)
        self.collect_log_metrics(runs, bench_start, time.time())

        return compute_summary(runs), runs


# ============================================================
# Main
# ============================================================

def main():
    parser = argparse.ArgumentParser(
        description='ElastiCache Probe Benchmark Runner'
    )
    parser.add_argument('--function-name', type=str, default=FUNCTION_NAME,
                       help='Deployed probe function name or ARN')
    parser.add_argument('--region', type=str, default=REGION,
                       help='AWS region')
    parser.add_argument('--iterations', type=int,
                       default=CONFIG['benchmark']['iterations'],
                       help='Number of warm invocations')
    parser.add_argument('--cold-iterations', type=int,
                       default=CONFIG['benchmark']['cold_start_runs'],
                       help='Number of forced cold start invocations')
    parser.add_argument('--log-wait', type=int, default=LOG_WAIT,
                       help='Seconds to wait before reading CloudWatch logs')
    parser.add_argument('--output-file', type=str,
                       help='Output file for results (JSON)')

    args = parser.parse_args()

    runner = ProbeBenchmarkRunner(function_name=args.function_name, region=args.region)
    summary, runs = runner.run_benchmark(
        iterations=args.iterations,
        cold_iterations=args.cold_iterations,
        log_wait=args.log_wait
    )

    print(f"\nSummary: {summary.successful_runs}/{summary.total_runs} successful")
    for phase, stats in summary.phases.items():
        print(f"  {phase:<10} mean {stats.mean_ms:.2f}ms  median {stats.median_ms:.2f}ms  "
              f"p95 {stats.p95_ms:.2f}ms")
    print(f"  Cold connect: {summary.cold_connection_mean_ms:.1f}ms, "
          f"Warm connect: {summary.warm_connection_mean_ms:.1f}ms")

    if args.output_file:
        output_path = Path(args.output_file)
    else:
        results_dir = Path(CONFIG['output']['results_dir'])
        results_dir.mkdir(exist_ok=True)
        timestamp = time.strftime('%Y%m%d_%H%M%S')
        output_path = results_dir / f"benchmark_{timestamp}.json"

    with open(output_path, 'w') as f:
        json.dump({
            'function_name': args.function_name,
            'summary': asdict(summary),
            'runs': [asdict(r) for r in runs]
        }, f, indent=2)

    print(f"\n{'='*60}")
    print(f"Results saved to: {output_path}")
    print(f"{'='*60}")


if __name__ == '__main__':
    main()
