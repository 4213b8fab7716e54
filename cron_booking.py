#!/usr/bin/env python3
"""Cron entry point for the sports booking bot"""

import argparse
import asyncio
import sys

from booking_config import BookingConfig, ReservationRequest, load_reservations, parse_day, parse_time
from sports_booking_bot import SportsBookingBot


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Book sports slots when the booking window opens")
    parser.add_argument('--dev', action='store_true', help="Show the browser with devtools open")
    parser.add_argument('--no-wait', action='store_true', help="Book immediately instead of waiting for the window")
    parser.add_argument('--category', help="Book a single slot in this category instead of the configured list")
    parser.add_argument('--timeslot', help="Start time (HH:MM) for --category")
    parser.add_argument('--day', help="Weekday for --category (monday..sunday); default is the lead day")
    return parser


def build_reservations(args) -> list[ReservationRequest]:
    if not args.category:
        return load_reservations()
    if not args.timeslot:
        raise ValueError("--timeslot is required with --category")
    parse_time(args.timeslot)
    return [ReservationRequest(category=args.category, timeslot=args.timeslot,
                               day_of_week=parse_day(args.day))]


async def run(argv=None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {}
    if args.dev:
        overrides.update(dev_mode=True, headless=False)
    if args.no_wait:
        overrides['skip_wait'] = True

    try:
        config = BookingConfig.from_env(**overrides)
        reservations = build_reservations(args)
    except (ValueError, OSError) as e:
        print(f"Error: {e}")
        return 1

    if not reservations:
        print("No reservations configured. Exiting gracefully.")
        return 0

    bot = SportsBookingBot(config, reservations)
    result = await bot.run()
    return 0 if result.success else 1


def main():
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
