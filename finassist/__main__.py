from finassist.main import main

main()
