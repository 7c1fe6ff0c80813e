from ride_timing.cli import main

main()
