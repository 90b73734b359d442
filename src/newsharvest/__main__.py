from newsharvest.cli import main

main()
