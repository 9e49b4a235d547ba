from envflow.cli import main

main()
