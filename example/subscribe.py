import sys
import logging
import asyncio

from wsstomp.wsstomp import WsStomp


logging.basicConfig(
    format="%(asctime)s - %(filename)s:%(lineno)d - " "%(levelname)s - %(message)s",
    level="DEBUG",
)


def on_message(frame):
    print(frame.body)


async def report_error(error):
    print("report_error", error)


async def run(url):
    connected = asyncio.Event()
    client = WsStomp(url)

    client.connect(
        login="guest",
        passcode="guest",
        on_connect=lambda frame: connected.set(),
        on_error=report_error,
    )
    await connected.wait()

    client.subscribe("/queue/test", on_message)
    client.send("/queue/test", body=u"Pedro Kiefer")

    transaction = client.begin()
    client.send("/queue/test", body=u"in a transaction",
                headers={"transaction": transaction.id})
    transaction.commit()

    await asyncio.sleep(10)

    done = asyncio.Event()
    client.disconnect(done.set)
    await done.wait()


def main(args):
    url = args[1] if len(args) > 1 else "ws://localhost:15674/ws"
    asyncio.run(run(url))


if __name__ == "__main__":
    main(sys.argv)
