from src.api.main import main

main()
