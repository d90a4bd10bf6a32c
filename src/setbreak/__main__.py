from setbreak.cli.main import main

main()
