"""
Convenience entrypoint to run the billing API with uvicorn.

Example:
  BILLING_STORE=document python -m apps.billing
"""
import os

import uvicorn


def main() -> None:
    reload = os.getenv("BILLING_RELOAD", "false").lower() == "true"
    host = os.getenv("BILLING_HOST", "0.0.0.0")
    port = int(os.getenv("BILLING_PORT", os.getenv("PORT", "10000")))
    uvicorn.run(
        "apps.billing.app.main:app",
        host=host,
        port=port,
        reload=reload,
        reload_dirs=["apps", "libs"] if reload else None,
    )


if __name__ == "__main__":
    main()
