from fiestaforge.cli import main

main()
