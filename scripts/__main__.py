"""Allow `python -m scripts` by running the compliance report CLI."""

from scripts.run_compliance_report import main

main()
