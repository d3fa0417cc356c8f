import asyncio
import logging
import sys

from xui_inbounds.api import PanelClient
from xui_inbounds.config import PanelSettings, load_settings
from xui_inbounds.share_link import share_links_for


async def export_share_links(settings: PanelSettings) -> list[str]:
    """Fetch every enabled inbound from the panel and encode its share link."""
    async with PanelClient.from_settings(settings) as client:
        inbounds = await client.inbounds_end.list()
    return share_links_for([i for i in inbounds if i.enable], settings.share_address)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    env_file = sys.argv[1] if len(sys.argv) > 1 else None
    for link in asyncio.run(export_share_links(load_settings(env_file))):
        print(link)


if __name__ == "__main__":
    main()
