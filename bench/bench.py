"""Round trip benchmark for wsstomp.

One session publishes messages to a queue while a second one consumes
them. ``WsStomp.send`` only queues text on the websocket writer, so every
run reports three times, measured from the first ``send``:

* queued: the publishing loop returned
* acked: the broker answered the receipt requested on the last message
* received: the consumer got the last message

Runs are repeated for each ``-fs`` chunk size so its effect is visible.
"""
import argparse
import asyncio
import csv
import os
import statistics
import sys

from timeit import default_timer as timer

from wsstomp.wsstomp import WsStomp


DEFAULT_NUM_MSGS = 10000
DEFAULT_MESSAGE_SIZE = 128
DEFAULT_FRAME_SIZE = 16 * 1024
DEFAULT_RUNS = 3

CSV_FIELDS = ('frame_size', 'index', 'messages', 'body_size', 'heartbeat',
              'queued', 'acked', 'received')


def get_parameters(args):
    parser = argparse.ArgumentParser(description='wsstomp round trip benchmark')

    parser.add_argument(
        '-n',
        type=int,
        default=DEFAULT_NUM_MSGS,
        help="Messages per run [default: %(default)s].")

    parser.add_argument(
        '-ms',
        type=int,
        default=DEFAULT_MESSAGE_SIZE,
        help="Message body size in bytes [default: %(default)s].")

    parser.add_argument(
        '-fs',
        type=int,
        action='append',
        help="Websocket chunk size, repeat to compare [default: {}].".format(
            DEFAULT_FRAME_SIZE))

    parser.add_argument(
        '-hb',
        type=int,
        default=0,
        help="Heartbeat period in ms, both directions [default: %(default)s].")

    parser.add_argument(
        '-binary',
        action='store_true',
        help="Send random bytes instead of text.")

    parser.add_argument(
        '-runs',
        type=int,
        default=DEFAULT_RUNS,
        help="Runs per chunk size [default: %(default)s].")

    parser.add_argument(
        '-csv',
        type=str,
        help="Write one row per run to this file.")

    parser.add_argument(
        'server',
        help="Stomp websocket url, e.g. ws://127.0.0.1:15674/ws.")

    parser.add_argument(
        'queue',
        help="Stomp queue to be used.")

    return parser.parse_args(args)


def make_body(size, binary):
    if binary:
        return os.urandom(size)
    return (b'wsstomp ' * (size // 8 + 1))[:size].decode('ascii')


class Run:
    def __init__(self, frame_size, index, params):
        self.frame_size = frame_size
        self.index = index
        self.messages = params.n
        self.body_size = params.ms
        self.heartbeat = params.hb

        self.queued = 0.0
        self.acked = 0.0
        self.received = 0.0

    @property
    def rate(self):
        return self.messages / self.received

    def row(self):
        return [getattr(self, field) for field in CSV_FIELDS]

    def __str__(self):
        return "queued {:.3f}s | acked {:.3f}s | received {:.3f}s ~ {:.0f} msgs/sec".format(
            self.queued, self.acked, self.received, self.rate)


async def open_session(params, name, frame_size, on_receipt=None):
    client = WsStomp(
        params.server,
        client_id=name,
        heartbeat_outgoing=params.hb,
        heartbeat_incoming=params.hb,
        max_frame_size=frame_size)

    connected = asyncio.get_running_loop().create_future()

    def on_error(error):
        if connected.done():
            print('{}: {}'.format(name, error), file=sys.stderr)
            return
        if not isinstance(error, Exception):
            error = RuntimeError(error)
        connected.set_exception(error)

    def on_connect(frame):
        if not connected.done():
            connected.set_result(True)

    client.connect(on_connect=on_connect, on_error=on_error, on_receipt=on_receipt)
    await connected

    return client


async def run_once(params, frame_size, index):
    loop = asyncio.get_running_loop()
    acked = loop.create_future()
    received = loop.create_future()
    counter = 0

    def on_message(frame):
        nonlocal counter
        counter += 1
        if counter == params.n:
            received.set_result(timer())

    def on_receipt(frame):
        if not acked.done():
            acked.set_result(timer())

    consumer = await open_session(params, 'bench-sub', frame_size)
    producer = await open_session(params, 'bench-pub', frame_size, on_receipt)
    consumer.subscribe(params.queue, on_message)

    body = make_body(params.ms, params.binary)
    result = Run(frame_size, index, params)

    start = timer()
    for _ in range(params.n - 1):
        producer.send(params.queue, body)
    producer.send(params.queue, body, {'receipt': 'bench-{}'.format(index)})
    result.queued = timer() - start

    result.acked = await acked - start
    result.received = await received - start

    producer.disconnect()
    consumer.disconnect()

    return result


def report(runs):
    by_size = {}
    for run in runs:
        by_size.setdefault(run.frame_size, []).append(run)

    for frame_size, group in by_size.items():
        print('\n Chunk size {}'.format(frame_size))
        for run in group:
            print('[{}] {}'.format(run.index + 1, run))

        rates = [run.rate for run in group]
        print('median {:.0f} msgs/sec | min {:.0f} | max {:.0f}'.format(
            statistics.median(rates), min(rates), max(rates)))


def to_csv(runs, path):
    with open(path, 'w', newline='') as handle:
        writer = csv.writer(handle)
        writer.writerow(CSV_FIELDS)
        for run in runs:
            writer.writerow(run.row())


async def run_benchmark(params):
    runs = []

    for frame_size in params.fs or [DEFAULT_FRAME_SIZE]:
        for index in range(params.runs):
            runs.append(await run_once(params, frame_size, index))

    report(runs)

    if params.csv:
        to_csv(runs, params.csv)


def main(args=None):

    if args is None:
        args = sys.argv[1:]

    params = get_parameters(args)

    if params.n < 1 or params.runs < 1:
        print('-n and -runs must be positive', file=sys.stderr)
        return 1

    asyncio.run(run_benchmark(params))
    return 0


if __name__ == '__main__':
    sys.exit(main(sys.argv[1:]))
