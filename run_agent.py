import argparse
import asyncio
import logging

from playwright.async_api import async_playwright

from voyager import AgentConfig, AgentLoop, Perception, PlaywrightHost, Planner, SessionTree

logger = logging.getLogger("voyager")


async def run_agent(instruction: str, start_url: str, config: AgentConfig) -> int:
    """
    Main entry: launch the browser, wire the control plane and run one task.
    """
    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=config.headless)
        host = PlaywrightHost(browser)
        tree = SessionTree(host, host, Perception(host, config), config)
        host.subscribe(tree.post_nowait)

        window_id = await host.open_window()
        await host.open_tab(window_id, start_url)
        await tree.initialize()
        await tree.drain()
        dispatcher = asyncio.create_task(tree.run_dispatcher())

        agent = AgentLoop(tree, Planner.from_config(config), config)
        try:
            result = await agent.run(instruction)
        finally:
            dispatcher.cancel()
            try:
                await dispatcher
            except asyncio.CancelledError:
                pass
            await tree.shutdown()
            await browser.close()

    print(f"\n{'=' * 60}")
    print(f"Status: {result.status.value}" + (" (step limit reached)" if result.exhausted else ""))
    print(result.summary)
    if result.error:
        print(f"Error: {result.error}")
    return 0 if result.success else 1


def main() -> int:
    parser = argparse.ArgumentParser(description="Drive a browser tab with a multimodal LLM.")
    parser.add_argument("instruction", help="what the agent should do")
    parser.add_argument("--url", default="https://www.bing.com", help="start page")
    parser.add_argument("--max-steps", type=int, default=None)
    parser.add_argument("--headless", action="store_true")
    args = parser.parse_args()

    config = AgentConfig.from_env()
    if args.max_steps is not None:
        config.max_steps = max(1, args.max_steps)
    if args.headless:
        config.headless = True

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not config.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set; every decision will fail")

    return asyncio.run(run_agent(args.instruction, args.url, config))


if __name__ == "__main__":
    raise SystemExit(main())
