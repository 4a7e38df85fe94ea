"""Run the fleet-deployer command line tool."""

from .tool.fleet_deployer import main

main()
