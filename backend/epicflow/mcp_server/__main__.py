from epicflow.mcp_server.server import main

main()
