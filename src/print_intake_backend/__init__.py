"""
Print Intake Backend - REST API behind the print/event request form

This package provides a FastAPI service that accepts a request form with
attached artwork and:

- Validates required fields and attachment limits, reporting every problem at once
- Uploads each attachment to an S3-compatible bucket and returns public links
- Sends a summary of the request to a Telegram chat and by email

Key Components:
    - main: FastAPI application, form parsing and the submit endpoint
    - pipeline: Stage-by-stage orchestration of one submission
    - configuration: Defaults plus environment secrets, validated per request
    - validation: Required-field and attachment checks
    - uploads / storage: Concurrent uploads to object storage
    - notifications: Summary text, Telegram and SMTP delivery
    - middleware: Request size limit and security headers
    - errors: Error taxonomy with HTTP status codes

Usage:
    Run the API server with:
        uvicorn print_intake_backend.main:app --host 0.0.0.0 --port 8000

    Or use the development script:
        uv run uvicorn print_intake_backend.main:app --reload
"""
