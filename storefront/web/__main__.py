import logging

import uvicorn


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    uvicorn.run("storefront.web.main:app", host="0.0.0.0", port=8000, log_config=None)


if __name__ == "__main__":
    main()
