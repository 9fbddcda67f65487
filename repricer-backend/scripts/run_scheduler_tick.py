import argparse
import asyncio
import logging

from repricer.services.scheduler import CampaignScheduler


async def run(recover: bool, tick: bool) -> dict:
    scheduler = CampaignScheduler()
    reset = scheduler.recover() if recover else 0
    picked = await scheduler.run_tick() if tick else 0
    return {"reset": reset, "picked": picked}


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the campaign scheduler once, outside the API process.")
    parser.add_argument(
        "--recover",
        action="store_true",
        help="Move campaigns stuck in processing back to scheduled.",
    )
    parser.add_argument(
        "--tick",
        action="store_true",
        help="Execute every scheduled campaign that is due now.",
    )
    args = parser.parse_args()
    if not args.recover and not args.tick:
        parser.error("nothing to do, pass --recover and/or --tick")

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    result = asyncio.run(run(args.recover, args.tick))
    print(f"reset={result['reset']} | picked={result['picked']}")


if __name__ == "__main__":
    main()
