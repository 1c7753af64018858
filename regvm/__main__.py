from regvm.cli import main

main()
